import os
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Profile, UserRole, UserStatus
from begtask.schemas.profile import (
    LoginRequest,
    ProfileRead,
    RecoverRequest,
    ResetPasswordRequest,
    SignupRequest,
    Token,
)
from begtask.core.security import (
    create_access_token,
    create_reset_token,
    decode_token,
    get_current_user,
    get_password_hash,
    password_fingerprint,
    verify_password,
)
from begtask.core.notifications import NotificationDispatcher
from begtask.api.deps import get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

ADMIN_EMAILS = {
    e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
}
REQUIRE_APPROVAL = os.getenv("REQUIRE_APPROVAL", "false").lower() == "true"


@router.post("/signup", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, db: AsyncSession = Depends(get_db)):
    email = payload.email.lower()
    existing = await db.execute(select(Profile.id).where(Profile.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Email already registered")

    is_admin = email in ADMIN_EMAILS
    user = Profile(
        email=email,
        hashed_password=get_password_hash(payload.password),
        name=payload.name,
        phone=payload.phone,
        role=UserRole.ADMIN if is_admin else UserRole.USER,
        status=UserStatus.PENDING if REQUIRE_APPROVAL and not is_admin else UserStatus.ACTIVE,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"New user {user.id} signed up ({user.status.value})")
    return user


@router.post("/login", response_model=Token)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Profile).where(Profile.email == payload.email.lower()))
    user = result.scalar_one_or_none()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Incorrect email or password")
    if user.status == UserStatus.PENDING:
        raise HTTPException(status_code=403, detail="Account awaiting approval")
    if user.status == UserStatus.BLOCKED:
        raise HTTPException(status_code=403, detail="Account blocked")
    return {"access_token": create_access_token(user), "token_type": "bearer"}


@router.get("/me", response_model=ProfileRead)
async def me(user: Profile = Depends(get_current_user)):
    return user


@router.post("/recover", status_code=status.HTTP_202_ACCEPTED)
async def recover_password(
    payload: RecoverRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Always accepted, so the response does not reveal which emails exist."""
    result = await db.execute(select(Profile).where(Profile.email == payload.email.lower()))
    user = result.scalar_one_or_none()
    if user:
        await notifier.dispatch("password_reset", user.id, token=create_reset_token(user))
    return {"message": "If the email is registered, a recovery link has been sent."}


@router.post("/reset")
async def reset_password(payload: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    data = decode_token(payload.token, "reset")
    if data is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user = await db.get(Profile, int(data["sub"]))
    if not user or data.get("pwd") != password_fingerprint(user):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user.hashed_password = get_password_hash(payload.password)
    await db.commit()
    logger.info(f"Password reset for user {user.id}")
    return {"message": "Password updated"}

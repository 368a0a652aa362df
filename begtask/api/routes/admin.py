import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Profile, UserRole, UserStatus
from begtask.schemas.profile import AdminUserUpdate, ProfileRead
from begtask.core.security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=List[ProfileRead])
async def list_users(
    status: Optional[str] = Query(None, description="pending, active or blocked"),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Profile).order_by(Profile.created_at.desc(), Profile.id.desc())
    if status:
        try:
            stmt = stmt.where(Profile.status == UserStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
    result = await db.execute(stmt)
    return result.scalars().all()


@router.patch("/users/{user_id}", response_model=ProfileRead)
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve, block or promote a user."""
    user = await db.get(Profile, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.id == admin.id and (
        (payload.status and payload.status != UserStatus.ACTIVE.value)
        or (payload.role and payload.role != UserRole.ADMIN.value)
    ):
        raise HTTPException(status_code=400, detail="Admins cannot block or demote themselves")

    if payload.status:
        user.status = UserStatus(payload.status)
    if payload.role:
        user.role = UserRole(payload.role)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Admin {admin.id} set user {user.id} to {user.status.value}/{user.role.value}")
    return user

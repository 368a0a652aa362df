import logging
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Profile
from begtask.schemas.profile import ProfileRead, ProfileUpdate, TeamMember
from begtask.core.security import get_current_user
from begtask.core.storage import remove_file, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(user: Profile = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=ProfileRead)
async def update_my_profile(
    payload: ProfileUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/me/avatar", response_model=ProfileRead)
async def upload_avatar(
    file: UploadFile = File(...),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    url = save_image(file, "avatars")
    if user.avatar_url:
        remove_file(user.avatar_url)
    user.avatar_url = url
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/", response_model=List[TeamMember])
async def lookup_profiles(
    ids: List[int] = Query(default=[]),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Public profile data (name, avatar) for a set of user ids."""
    if not ids:
        return []
    result = await db.execute(select(Profile).where(Profile.id.in_(ids)).order_by(Profile.id))
    return result.scalars().all()

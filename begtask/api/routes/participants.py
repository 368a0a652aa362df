import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Profile, TaskParticipant
from begtask.schemas.task import ParticipantCreate, ParticipantRead
from begtask.core.security import get_current_user
from begtask.core.notifications import NotificationDispatcher
from begtask.api.deps import get_accessible_task, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks/{task_id}/participants", tags=["participants"])


def participant_read(participant: TaskParticipant, profile: Profile) -> ParticipantRead:
    return ParticipantRead(
        id=participant.id,
        task_id=participant.task_id,
        user_id=participant.user_id,
        role=participant.role,
        name=profile.name,
        avatar_url=profile.avatar_url,
    )


@router.get("", response_model=List[ParticipantRead])
async def list_participants(
    task_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_task(db, task_id, user)
    result = await db.execute(
        select(TaskParticipant, Profile)
        .join(Profile, Profile.id == TaskParticipant.user_id)
        .where(TaskParticipant.task_id == task_id)
        .order_by(TaskParticipant.id)
    )
    return [participant_read(p, profile) for p, profile in result.all()]


@router.post("", response_model=ParticipantRead, status_code=status.HTTP_201_CREATED)
async def add_participant(
    task_id: int,
    payload: ParticipantCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    task, _, board = await get_accessible_task(db, task_id, user)
    member = await db.get(Profile, payload.user_id)
    if not member:
        raise HTTPException(status_code=404, detail="User not found")

    existing = await db.execute(
        select(TaskParticipant.id).where(
            TaskParticipant.task_id == task_id, TaskParticipant.user_id == payload.user_id
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="User is already a participant")

    participant = TaskParticipant(task_id=task_id, user_id=payload.user_id, role=payload.role)
    db.add(participant)
    await db.commit()
    await db.refresh(participant)

    await notifier.dispatch("added_to_task", member.id, task_title=task.title, board_id=board.id)
    return participant_read(participant, member)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_participant(
    task_id: int,
    user_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_task(db, task_id, user)
    result = await db.execute(
        delete(TaskParticipant).where(
            TaskParticipant.task_id == task_id, TaskParticipant.user_id == user_id
        )
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Participant not found")
    await db.commit()

from typing import Tuple

from fastapi import HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.core.notifications import NotificationDispatcher
from begtask.db.models import Board, BoardAccess, BoardColumn, Profile, Task, UserRole


def get_notifier(request: Request) -> NotificationDispatcher:
    return NotificationDispatcher(getattr(request.app.state, "redis", None))


def get_redis(request: Request):
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        raise HTTPException(status_code=503, detail="Job queue unavailable")
    return redis


def is_admin(user: Profile) -> bool:
    return user.role == UserRole.ADMIN


async def get_accessible_board(db: AsyncSession, board_id: int, user: Profile) -> Board:
    """Board the user owns, was granted, or can see as an admin. 404 otherwise."""
    board = await db.get(Board, board_id)
    if not board:
        raise HTTPException(status_code=404, detail="Board not found")
    if board.owner_id == user.id or is_admin(user):
        return board

    result = await db.execute(
        select(BoardAccess.id).where(
            BoardAccess.board_id == board_id, BoardAccess.user_id == user.id
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Board not found")
    return board


async def get_owned_board(db: AsyncSession, board_id: int, user: Profile) -> Board:
    board = await get_accessible_board(db, board_id, user)
    if board.owner_id != user.id and not is_admin(user):
        raise HTTPException(status_code=403, detail="Only the board owner can do this")
    return board


async def get_accessible_column(
    db: AsyncSession, column_id: int, user: Profile
) -> Tuple[BoardColumn, Board]:
    column = await db.get(BoardColumn, column_id)
    if not column:
        raise HTTPException(status_code=404, detail="Column not found")
    board = await get_accessible_board(db, column.board_id, user)
    return column, board


async def get_accessible_task(
    db: AsyncSession, task_id: int, user: Profile
) -> Tuple[Task, BoardColumn, Board]:
    task = await db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    column, board = await get_accessible_column(db, task.column_id, user)
    return task, column, board


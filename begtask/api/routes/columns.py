import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import BoardColumn, Profile, Task
from begtask.db.repository import compact_column_positions, delete_tasks, next_column_position
from begtask.schemas.column import ColumnCreate, ColumnRead, ColumnUpdate
from begtask.core.security import get_current_user
from begtask.core.notifications import NotificationDispatcher
from begtask.api.deps import get_accessible_board, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/boards/{board_id}/columns", tags=["columns"])


async def get_board_column(db: AsyncSession, board_id: int, column_id: int) -> BoardColumn:
    column = await db.get(BoardColumn, column_id)
    if not column or column.board_id != board_id:
        raise HTTPException(status_code=404, detail="Column not found")
    return column


@router.post("", response_model=ColumnRead, status_code=status.HTTP_201_CREATED)
async def create_column(
    board_id: int,
    payload: ColumnCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Append a column after the last one."""
    await get_accessible_board(db, board_id, user)
    column = BoardColumn(
        board_id=board_id,
        title=payload.title,
        color=payload.color,
        position=await next_column_position(db, board_id),
    )
    db.add(column)
    await db.commit()
    await db.refresh(column)
    return column


@router.patch("/{column_id}", response_model=ColumnRead)
async def update_column(
    board_id: int,
    column_id: int,
    payload: ColumnUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_board(db, board_id, user)
    column = await get_board_column(db, board_id, column_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(column, field, value)
    await db.commit()
    await db.refresh(column)
    return column


@router.delete("/{column_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_column(
    board_id: int,
    column_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Delete a column with its tasks. Remaining columns are renumbered."""
    await get_accessible_board(db, board_id, user)
    column = await get_board_column(db, board_id, column_id)
    column_title = column.title

    tasks = (await db.execute(select(Task).where(Task.column_id == column_id))).scalars().all()
    notices = [(t.responsible_id, t.title) for t in tasks]

    await delete_tasks(db, [t.id for t in tasks])
    await db.execute(delete(BoardColumn).where(BoardColumn.id == column_id))
    await compact_column_positions(db, board_id)
    await db.commit()
    logger.info(f"Column {column_id} deleted from board {board_id} with {len(tasks)} task(s)")

    for responsible_id, task_title in notices:
        await notifier.dispatch(
            "column_deleted", responsible_id, task_title=task_title, column_title=column_title
        )

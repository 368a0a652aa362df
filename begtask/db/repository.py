import logging
from typing import Any, List

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.core.reordering import ColumnLane, TaskCard
from begtask.db.models import BoardColumn, Task, TaskComment, TaskParticipant

logger = logging.getLogger(__name__)


def task_card(task: Task) -> TaskCard:
    priority = getattr(task.priority, "value", task.priority)
    return TaskCard(
        id=task.id,
        column_id=task.column_id,
        title=task.title,
        position=task.position,
        priority=priority,
        description=task.description,
        due_date=task.due_date,
        responsible_id=task.responsible_id,
        attachments=list(task.attachments or []),
    )


class SqlBoardDataAccess:
    """Board data access over a SQLAlchemy session. Every write is committed on its own."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_columns(self, board_id: int) -> List[ColumnLane]:
        result = await self.db.execute(
            select(BoardColumn)
            .where(BoardColumn.board_id == board_id)
            .order_by(BoardColumn.position, BoardColumn.id)
            .execution_options(populate_existing=True)
        )
        columns = result.scalars().all()

        column_ids = [c.id for c in columns]
        tasks: List[Task] = []
        if column_ids:
            task_result = await self.db.execute(
                select(Task)
                .where(Task.column_id.in_(column_ids))
                .order_by(Task.position, Task.id)
                .execution_options(populate_existing=True)
            )
            tasks = list(task_result.scalars().all())

        return [
            ColumnLane(
                id=c.id,
                board_id=c.board_id,
                title=c.title,
                position=c.position,
                color=c.color,
                tasks=[task_card(t) for t in tasks if t.column_id == c.id],
            )
            for c in columns
        ]

    async def update_column(self, column_id: int, **values: Any) -> None:
        await self._write(update(BoardColumn).where(BoardColumn.id == column_id).values(**values))

    async def update_task(self, task_id: int, **values: Any) -> None:
        await self._write(update(Task).where(Task.id == task_id).values(**values))

    async def _write(self, stmt):
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise


async def next_column_position(db: AsyncSession, board_id: int) -> int:
    result = await db.execute(
        select(func.max(BoardColumn.position)).where(BoardColumn.board_id == board_id)
    )
    current = result.scalar()
    return 0 if current is None else current + 1


async def next_task_position(db: AsyncSession, column_id: int) -> int:
    result = await db.execute(select(func.max(Task.position)).where(Task.column_id == column_id))
    current = result.scalar()
    return 0 if current is None else current + 1


async def compact_column_positions(db: AsyncSession, board_id: int):
    """Renumber a board's columns to 0..n-1 keeping their current order."""
    result = await db.execute(
        select(BoardColumn)
        .where(BoardColumn.board_id == board_id)
        .order_by(BoardColumn.position, BoardColumn.id)
    )
    for index, column in enumerate(result.scalars().all()):
        if column.position != index:
            column.position = index


async def compact_task_positions(db: AsyncSession, column_id: int):
    """Renumber a column's tasks to 0..m-1 keeping their current order."""
    result = await db.execute(
        select(Task).where(Task.column_id == column_id).order_by(Task.position, Task.id)
    )
    for index, task in enumerate(result.scalars().all()):
        if task.position != index:
            task.position = index


async def delete_tasks(db: AsyncSession, task_ids: List[int]):
    """Remove tasks with their participant links and comments. The caller commits."""
    if not task_ids:
        return
    await db.execute(delete(TaskParticipant).where(TaskParticipant.task_id.in_(task_ids)))
    await db.execute(delete(TaskComment).where(TaskComment.task_id.in_(task_ids)))
    await db.execute(delete(Task).where(Task.id.in_(task_ids)))

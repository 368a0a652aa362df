"""
Board view state and the drag-and-drop reordering protocol.

The controller keeps an in-memory copy of a board (columns with their tasks),
applies each gesture to that copy first, then persists the changed positions
one write at a time. Writes are independent; if any of them fails the local
copy is thrown away and the whole board is fetched again.
"""
import logging
from dataclasses import dataclass, field, replace, asdict
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Sequence, TypeVar

from begtask.schemas.reorder import DragResult

logger = logging.getLogger(__name__)


@dataclass
class TaskCard:
    id: int
    column_id: int
    title: str
    position: int
    priority: str = "medium"
    description: Optional[str] = None
    due_date: Optional[date] = None
    responsible_id: Optional[int] = None
    attachments: List[str] = field(default_factory=list)


@dataclass
class ColumnLane:
    id: int
    board_id: int
    title: str
    position: int
    color: Optional[str] = None
    tasks: List[TaskCard] = field(default_factory=list)


class BoardDataAccess(Protocol):
    async def fetch_columns(self, board_id: int) -> List[ColumnLane]: ...

    async def update_column(self, column_id: int, **values: Any) -> None: ...

    async def update_task(self, task_id: int, **values: Any) -> None: ...


class TaskMoveNotifier(Protocol):
    async def task_moved(
        self, responsible_id: int, task_title: str, from_column: str, to_column: str
    ) -> None: ...


class InvalidDrag(ValueError):
    """The gesture does not refer to anything on this board."""


class ReorderFailed(Exception):
    """A position write failed; the board has been reloaded from the data layer."""

    def __init__(self, message: str, cause: Exception):
        super().__init__(message)
        self.cause = cause


T = TypeVar("T", TaskCard, ColumnLane)


def move_item(items: Sequence[T], source_index: int, destination_index: int) -> List[T]:
    """Return a new list with the item at source_index re-inserted at destination_index.

    The destination is clamped, so dropping past the end appends.
    """
    if not 0 <= source_index < len(items):
        raise InvalidDrag(f"Source index {source_index} out of range")
    reordered = list(items)
    moved = reordered.pop(source_index)
    destination_index = max(0, min(destination_index, len(reordered)))
    reordered.insert(destination_index, moved)
    return reordered


def renumber(items: Sequence[T]) -> List[T]:
    """Copies of items with position set to their index."""
    return [replace(item, position=index) for index, item in enumerate(items)]


def changed_positions(before: Sequence[T], after: Sequence[T]) -> List[T]:
    """Items in `after` whose position differs from the one recorded in `before`."""
    previous = {item.id: item.position for item in before}
    return [item for item in after if previous.get(item.id) != item.position]


class BoardViewController:
    """Holds one board's columns and tasks and applies drag gestures to them."""

    def __init__(
        self,
        board_id: int,
        data_access: BoardDataAccess,
        notifier: Optional[TaskMoveNotifier] = None,
    ):
        self.board_id = board_id
        self.data_access = data_access
        self.notifier = notifier
        self.columns: List[ColumnLane] = []

    async def load(self) -> List[ColumnLane]:
        self.columns = await self.data_access.fetch_columns(self.board_id)
        return self.columns

    def snapshot(self) -> List[Dict[str, Any]]:
        return [asdict(column) for column in self.columns]

    def find_column(self, column_id: int) -> ColumnLane:
        for column in self.columns:
            if column.id == column_id:
                return column
        raise InvalidDrag(f"Column {column_id} is not on board {self.board_id}")

    async def handle_drag_end(self, result: DragResult) -> bool:
        """Apply a finished gesture. Returns False when nothing had to change."""
        source, destination = result.source, result.destination

        if destination is None:
            return False
        if (
            source.container_id == destination.container_id
            and source.index == destination.index
        ):
            return False

        if result.type == "column":
            if source.container_id != self.board_id or destination.container_id != self.board_id:
                raise InvalidDrag("Columns can only be reordered within their board")
            await self._reorder_columns(source.index, destination.index)
        elif source.container_id == destination.container_id:
            await self._reorder_tasks(source.container_id, source.index, destination.index)
        else:
            await self._move_task(
                source.container_id,
                source.index,
                destination.container_id,
                destination.index,
            )
        return True

    async def _reorder_columns(self, source_index: int, destination_index: int):
        before = self.columns
        updated = renumber(move_item(before, source_index, destination_index))
        self.columns = updated

        try:
            for column in changed_positions(before, updated):
                await self.data_access.update_column(column.id, position=column.position)
        except Exception as e:
            await self._recover("Failed to reorder columns", e)

    async def _reorder_tasks(self, column_id: int, source_index: int, destination_index: int):
        column = self.find_column(column_id)
        before = column.tasks
        updated = renumber(move_item(before, source_index, destination_index))
        self._replace_tasks({column.id: updated})

        try:
            for task in changed_positions(before, updated):
                await self.data_access.update_task(task.id, position=task.position)
        except Exception as e:
            await self._recover("Failed to reorder tasks", e)

    async def _move_task(
        self,
        source_column_id: int,
        source_index: int,
        destination_column_id: int,
        destination_index: int,
    ):
        source_column = self.find_column(source_column_id)
        destination_column = self.find_column(destination_column_id)
        if not 0 <= source_index < len(source_column.tasks):
            raise InvalidDrag(f"Source index {source_index} out of range")

        source_before = source_column.tasks
        destination_before = destination_column.tasks

        remaining = list(source_before)
        moved = replace(remaining.pop(source_index), column_id=destination_column.id)
        incoming = list(destination_before)
        destination_index = max(0, min(destination_index, len(incoming)))
        incoming.insert(destination_index, moved)

        updated_source = renumber(remaining)
        updated_destination = renumber(incoming)
        moved = updated_destination[destination_index]
        self._replace_tasks(
            {source_column.id: updated_source, destination_column.id: updated_destination}
        )

        try:
            await self.data_access.update_task(
                moved.id, column_id=destination_column.id, position=moved.position
            )
            for task in changed_positions(source_before, updated_source):
                await self.data_access.update_task(task.id, position=task.position)
            others = [task for task in updated_destination if task.id != moved.id]
            for task in changed_positions(destination_before, others):
                await self.data_access.update_task(task.id, position=task.position)
        except Exception as e:
            await self._recover("Failed to move task", e)

        if moved.responsible_id is not None and self.notifier is not None:
            try:
                await self.notifier.task_moved(
                    responsible_id=moved.responsible_id,
                    task_title=moved.title,
                    from_column=source_column.title,
                    to_column=destination_column.title,
                )
            except Exception as e:
                logger.error(f"Task move notification failed for task {moved.id}: {e}", exc_info=True)

    def _replace_tasks(self, tasks_by_column: Dict[int, List[TaskCard]]):
        self.columns = [
            replace(column, tasks=tasks_by_column[column.id])
            if column.id in tasks_by_column
            else column
            for column in self.columns
        ]

    async def _recover(self, message: str, error: Exception):
        logger.error(f"{message} on board {self.board_id}: {error}", exc_info=True)
        self.columns = []
        await self.load()
        raise ReorderFailed(message, error) from error

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import BoardColumn, Profile, Task, TaskPriority
from begtask.db.repository import next_column_position, next_task_position
from begtask.schemas.assistant import GenerateRequest, GenerateResponse
from begtask.core.security import get_current_user
from begtask.core.services import generate_board_content
from begtask.api.deps import get_accessible_board

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/boards/{board_id}/generate", tags=["generate"])


def new_tasks(column_id: int, items, start: int):
    return [
        Task(
            column_id=column_id,
            title=item["title"],
            description=item.get("description") or None,
            priority=TaskPriority(item.get("priority", "medium")),
            position=start + offset,
            attachments=[],
        )
        for offset, item in enumerate(items)
    ]


@router.post("", response_model=GenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_content(
    board_id: int,
    payload: GenerateRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Generate columns and/or tasks from a prompt and append them to the board."""
    await get_accessible_board(db, board_id, user)

    target = None
    if payload.type == "tasks":
        if payload.column_id is None:
            raise HTTPException(status_code=400, detail="column_id is required to generate tasks")
        target = await db.get(BoardColumn, payload.column_id)
        if not target or target.board_id != board_id:
            raise HTTPException(status_code=404, detail="Column not found")

    try:
        items = await generate_board_content(payload.prompt, payload.type, payload.count)
    except Exception as e:
        logger.error(f"Board generation failed for board {board_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Text generation failed")

    columns, tasks = [], []
    if target is not None:
        tasks = new_tasks(target.id, items, await next_task_position(db, target.id))
        db.add_all(tasks)
    else:
        start = await next_column_position(db, board_id)
        for offset, item in enumerate(items):
            column = BoardColumn(board_id=board_id, title=item["title"][:60], position=start + offset)
            db.add(column)
            await db.flush()
            columns.append(column)
            column_tasks = new_tasks(column.id, item.get("tasks", []), 0)
            db.add_all(column_tasks)
            tasks.extend(column_tasks)

    await db.commit()
    logger.info(f"Generated {len(columns)} column(s) and {len(tasks)} task(s) on board {board_id}")
    return {
        "created_columns": [c.id for c in columns],
        "created_tasks": [t.id for t in tasks],
    }

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Profile, Task, TaskPriority
from begtask.db.repository import compact_task_positions, delete_tasks, next_task_position
from begtask.schemas.task import TaskCreate, TaskRead, TaskUpdate
from begtask.core.security import get_current_user
from begtask.core.storage import remove_file, save_image
from begtask.core.notifications import NotificationDispatcher
from begtask.api.deps import get_accessible_column, get_accessible_task, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


async def ensure_profile(db: AsyncSession, user_id):
    if user_id is not None and await db.get(Profile, user_id) is None:
        raise HTTPException(status_code=400, detail="Responsible user not found")


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Append a task at the end of its column."""
    await get_accessible_column(db, payload.column_id, user)
    await ensure_profile(db, payload.responsible_id)

    task = Task(
        column_id=payload.column_id,
        title=payload.title,
        description=payload.description,
        priority=TaskPriority(payload.priority),
        due_date=payload.due_date,
        responsible_id=payload.responsible_id,
        attachments=[],
        position=await next_task_position(db, payload.column_id),
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)

    await notifier.dispatch("task_assigned", task.responsible_id, task_title=task.title)
    return task


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    task, _, _ = await get_accessible_task(db, task_id, user)
    return task


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: int,
    payload: TaskUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    task, _, _ = await get_accessible_task(db, task_id, user)
    changes = payload.model_dump(exclude_unset=True)
    previous_responsible = task.responsible_id

    if "responsible_id" in changes:
        await ensure_profile(db, changes["responsible_id"])
    if "priority" in changes:
        priority = changes.pop("priority")
        if priority is not None:
            task.priority = TaskPriority(priority)
    for field, value in changes.items():
        setattr(task, field, value)

    await db.commit()
    await db.refresh(task)

    if task.responsible_id is not None and task.responsible_id != previous_responsible:
        await notifier.dispatch("task_assigned", task.responsible_id, task_title=task.title)
    else:
        await notifier.dispatch("task_updated", task.responsible_id, task_title=task.title)
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Delete a task. Its siblings are renumbered to close the gap."""
    task, column, _ = await get_accessible_task(db, task_id, user)
    responsible_id, task_title = task.responsible_id, task.title

    await delete_tasks(db, [task.id])
    await compact_task_positions(db, column.id)
    await db.commit()
    logger.info(f"Task {task_id} deleted from column {column.id}")

    await notifier.dispatch("task_deleted", responsible_id, task_title=task_title)


# --- Image attachments --- #

@router.post("/{task_id}/attachments", response_model=TaskRead)
async def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    task, _, _ = await get_accessible_task(db, task_id, user)
    url = save_image(file, f"tasks/{task.id}")
    task.attachments = list(task.attachments or []) + [url]
    await db.commit()
    await db.refresh(task)
    return task


@router.delete("/{task_id}/attachments", response_model=TaskRead)
async def remove_attachment(
    task_id: int,
    url: str = Query(..., description="Public URL of the attachment"),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    task, _, _ = await get_accessible_task(db, task_id, user)
    attachments = list(task.attachments or [])
    if url not in attachments:
        raise HTTPException(status_code=404, detail="Attachment not found")

    task.attachments = [a for a in attachments if a != url]
    await db.commit()
    await db.refresh(task)
    remove_file(url)
    return task

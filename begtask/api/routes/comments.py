import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Board, BoardComment, Profile, TaskComment
from begtask.schemas.comment import CommentCreate, CommentRead
from begtask.core.security import get_current_user
from begtask.api.deps import get_accessible_board, get_accessible_task, is_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["comments"])


def can_delete(comment, board: Board, user: Profile) -> bool:
    return comment.author_id == user.id or board.owner_id == user.id or is_admin(user)


# --- Board comments --- #

@router.get("/boards/{board_id}/comments", response_model=List[CommentRead])
async def list_board_comments(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_board(db, board_id, user)
    result = await db.execute(
        select(BoardComment)
        .where(BoardComment.board_id == board_id)
        .order_by(BoardComment.created_at.desc(), BoardComment.id.desc())
    )
    return result.scalars().all()


@router.post("/boards/{board_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def create_board_comment(
    board_id: int,
    payload: CommentCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_board(db, board_id, user)
    comment = BoardComment(
        board_id=board_id,
        author_id=user.id,
        author_name=user.name,
        content=payload.content,
        is_public=payload.is_public,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment


@router.delete("/boards/{board_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_board_comment(
    board_id: int,
    comment_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    board = await get_accessible_board(db, board_id, user)
    comment = await db.get(BoardComment, comment_id)
    if not comment or comment.board_id != board_id:
        raise HTTPException(status_code=404, detail="Comment not found")
    if not can_delete(comment, board, user):
        raise HTTPException(status_code=403, detail="Not allowed to delete this comment")
    await db.delete(comment)
    await db.commit()


# --- Task comments --- #

@router.get("/tasks/{task_id}/comments", response_model=List[CommentRead])
async def list_task_comments(
    task_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_task(db, task_id, user)
    result = await db.execute(
        select(TaskComment)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at, TaskComment.id)
    )
    return result.scalars().all()


@router.post("/tasks/{task_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def create_task_comment(
    task_id: int,
    payload: CommentCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_task(db, task_id, user)
    comment = TaskComment(
        task_id=task_id,
        author_id=user.id,
        author_name=user.name,
        content=payload.content,
        is_public=payload.is_public,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment


@router.delete("/tasks/{task_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task_comment(
    task_id: int,
    comment_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _, _, board = await get_accessible_task(db, task_id, user)
    comment = await db.get(TaskComment, comment_id)
    if not comment or comment.task_id != task_id:
        raise HTTPException(status_code=404, detail="Comment not found")
    if not can_delete(comment, board, user):
        raise HTTPException(status_code=403, detail="Not allowed to delete this comment")
    await db.delete(comment)
    await db.commit()

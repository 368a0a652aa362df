"""
Read-only board viewer for people without an account.

A public board with a password is unlocked once per visitor: the password is
exchanged for a short-lived token scoped to that board, sent back in the
`X-Board-Token` header on the following requests.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import Board, BoardComment
from begtask.db.repository import SqlBoardDataAccess
from begtask.schemas.board import BoardTokenRead, PublicBoardInfo, PublicBoardView, UnlockRequest
from begtask.schemas.comment import CommentCreate, CommentRead
from begtask.core.reordering import BoardViewController
from begtask.core.security import create_board_token, decode_token, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public/boards", tags=["public"])


async def get_public_board(db: AsyncSession, board_id: int) -> Board:
    board = await db.get(Board, board_id)
    if not board or not board.is_public:
        raise HTTPException(status_code=404, detail="Board not found")
    return board


def board_info(board: Board) -> PublicBoardInfo:
    return PublicBoardInfo(
        id=board.id,
        title=board.title,
        description=board.description,
        requires_password=board.has_password,
    )


async def get_unlocked_board(
    board_id: int,
    x_board_token: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Board:
    board = await get_public_board(db, board_id)
    if board.has_password:
        if not x_board_token or decode_token(x_board_token, f"board:{board_id}") is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Board is locked")
    return board


@router.get("/{board_id}", response_model=PublicBoardInfo)
async def get_public_board_info(board_id: int, db: AsyncSession = Depends(get_db)):
    return board_info(await get_public_board(db, board_id))


@router.post("/{board_id}/unlock", response_model=BoardTokenRead)
async def unlock_board(board_id: int, payload: UnlockRequest, db: AsyncSession = Depends(get_db)):
    board = await get_public_board(db, board_id)
    if board.has_password and not verify_password(payload.password, board.password_hash):
        logger.info(f"Wrong password for public board {board_id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect password")
    return {"board_token": create_board_token(board_id), "token_type": "board"}


@router.get("/{board_id}/view", response_model=PublicBoardView)
async def view_board(
    board_id: int,
    board: Board = Depends(get_unlocked_board),
    db: AsyncSession = Depends(get_db),
):
    controller = BoardViewController(board_id, SqlBoardDataAccess(db))
    await controller.load()
    comments = await db.execute(
        select(BoardComment)
        .where(BoardComment.board_id == board_id, BoardComment.is_public.is_(True))
        .order_by(BoardComment.created_at.desc(), BoardComment.id.desc())
    )
    return {
        "board": board_info(board),
        "columns": controller.snapshot(),
        "comments": comments.scalars().all(),
    }


@router.post("/{board_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def post_public_comment(
    board_id: int,
    payload: CommentCreate,
    board: Board = Depends(get_unlocked_board),
    db: AsyncSession = Depends(get_db),
):
    comment = BoardComment(
        board_id=board.id,
        author_id=None,
        author_name=(payload.author_name or "").strip() or "Visitor",
        content=payload.content,
        is_public=True,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment

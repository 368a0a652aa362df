import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import BoardMessage, Profile
from begtask.schemas.assistant import AssistantReply, AssistantRequest, BoardMessageRead
from begtask.core.assistant import build_board_snapshot, reply
from begtask.core.security import get_current_user
from begtask.api.deps import get_accessible_board

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/boards/{board_id}/assistant", tags=["assistant"])


@router.post("", response_model=AssistantReply)
async def ask_assistant(
    board_id: int,
    payload: AssistantRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Answer a question about the board and keep both sides in the transcript."""
    await get_accessible_board(db, board_id, user)
    snapshot = await build_board_snapshot(db, board_id)
    answer = await reply(payload.message, snapshot, payload.mode)

    db.add_all(
        [
            BoardMessage(board_id=board_id, sender="user", content=payload.message),
            BoardMessage(board_id=board_id, sender="assistant", content=answer),
        ]
    )
    await db.commit()
    return {"reply": answer}


@router.get("/messages", response_model=List[BoardMessageRead])
async def list_messages(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_board(db, board_id, user)
    result = await db.execute(
        select(BoardMessage)
        .where(BoardMessage.board_id == board_id)
        .order_by(BoardMessage.created_at, BoardMessage.id)
    )
    return result.scalars().all()

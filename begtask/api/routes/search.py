import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import BoardVector, Profile
from begtask.schemas.search import SearchResponse, VectorizeResponse
from begtask.core.security import get_current_user
from begtask.core.services import get_text_embedding, redis_vectorize_board
from begtask.core.vectors import rank_by_similarity
from begtask.api.deps import get_accessible_board, get_redis

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/boards/{board_id}", tags=["search"])


@router.post("/vectorize", response_model=VectorizeResponse, status_code=status.HTTP_202_ACCEPTED)
async def vectorize(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Queue a rebuild of the board's embeddings."""
    await get_accessible_board(db, board_id, user)
    await redis_vectorize_board(redis, board_id)
    return {"message": f"Vectorization started for board {board_id}"}


@router.get("/search", response_model=SearchResponse)
async def search_board(
    board_id: int,
    q: str = Query(..., min_length=1, description="Search query"),
    k: int = Query(5, ge=1, le=50),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rank the board's documents by cosine similarity to the query."""
    await get_accessible_board(db, board_id, user)

    try:
        query_emb = await get_text_embedding(q)
    except Exception as e:
        logger.error(f"Query embedding failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Embedding service unavailable")

    rows = await db.execute(
        select(BoardVector.id, BoardVector.content, BoardVector.embedding)
        .where(BoardVector.board_id == board_id)
    )
    ranked = rank_by_similarity(query_emb, rows.all(), k)

    return {
        "query": q,
        "results": [
            {"id": r["id"], "content": json.loads(r["content"]), "score": round(r["score"], 10)}
            for r in ranked
        ],
    }

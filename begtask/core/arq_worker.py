import asyncio
import logging
import os
import sys
import time
import random
from typing import List

from arq import cron, Worker
from arq.connections import RedisSettings

from sqlalchemy import select, delete

from openai import RateLimitError

from begtask.db.session import async_session
from begtask.db.models import Board, BoardColumn, BoardVector, Profile, Task
from begtask.core.services import get_text_embedding
from begtask.core.notifications import (
    EMAIL_ONLY,
    NotificationService,
    build_notification,
)
from begtask.core.vectors import board_documents

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

MAX_RETRIES = 5


async def embed_with_retry(text: str) -> List[float]:
    """Embed text, backing off on rate limits."""
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            return await get_text_embedding(text)
        except RateLimitError:
            if attempt == MAX_RETRIES:
                raise
            # Exponential backoff with jitter between 1s and ~30s
            backoff = min(2**attempt + random.random(), 30)
            logger.warning(f"Rate limited, retry {attempt}/{MAX_RETRIES} in {backoff:.2f}s")
            await asyncio.sleep(backoff)
    raise RuntimeError("unreachable")


async def vectorize_board(ctx, board_id: int):
    """Background job: rebuild the embeddings of a board, its columns and its tasks."""
    logger.info(f"Vectorizing board {board_id}")

    try:
        async with async_session() as db:
            board = await db.get(Board, board_id)
            if not board:
                logger.warning(f"Board {board_id} not found")
                return

            columns = (
                await db.execute(
                    select(BoardColumn)
                    .where(BoardColumn.board_id == board_id)
                    .order_by(BoardColumn.position)
                )
            ).scalars().all()
            column_ids = [c.id for c in columns]
            tasks = []
            if column_ids:
                tasks = (
                    await db.execute(
                        select(Task).where(Task.column_id.in_(column_ids)).order_by(Task.position)
                    )
                ).scalars().all()

            documents = board_documents(
                {"id": board.id, "title": board.title, "description": board.description},
                [
                    {
                        "title": c.title,
                        "tasks": [
                            {
                                "title": t.title,
                                "description": t.description,
                                "priority": getattr(t.priority, "value", t.priority),
                                "due_date": t.due_date,
                            }
                            for t in tasks
                            if t.column_id == c.id
                        ],
                    }
                    for c in columns
                ],
            )

            rows = []
            for content, text in documents:
                embedding = await embed_with_retry(text)
                rows.append(BoardVector(board_id=board_id, content=content, embedding=embedding))

            # Replace the previous vectors only once every embedding succeeded
            await db.execute(delete(BoardVector).where(BoardVector.board_id == board_id))
            db.add_all(rows)
            await db.commit()
            logger.info(f"Stored {len(rows)} vectors for board {board_id}")

    except Exception as e:
        logger.error(f"Vectorization failed on board {board_id}: {e}", exc_info=True)


vectorize_board.max_tries = 3
vectorize_board.retry_delay = 10  # seconds


async def send_notification(ctx, kind: str, user_id: int, params: dict):
    """Background job: render a notification for a user and deliver it."""
    try:
        async with async_session() as db:
            user = await db.get(Profile, user_id)
        if not user:
            logger.warning(f"Notification '{kind}' skipped, user {user_id} not found")
            return

        notification = build_notification(kind, user.name, **params)
        phone = None if kind in EMAIL_ONLY else user.phone
        result = await NotificationService().send_both(phone, user.email, notification)
        logger.info(f"Notification '{kind}' for user {user_id}: {result}")
    except Exception as e:
        logger.error(f"Notification '{kind}' for user {user_id} failed: {e}", exc_info=True)


async def send_broadcast(ctx, phones: List[str], message: str):
    """Background job: one WhatsApp message to many recipients."""
    sent = await NotificationService().send_whatsapp(phones, message)
    logger.info(f"Broadcast to {len(phones)} recipient(s): {'sent' if sent else 'not sent'}")


async def worker_heartbeat(ctx):
    redis = ctx["redis"]
    await redis.set(
        "arq:heartbeat", str(time.time()), ex=60
    )  # expire in 60 seconds


async def run_worker_forever():
    """
    Resilient loop that keeps the ARQ worker running.
    Restarts worker on failure with exponential backoff.
    """
    backoff = 1
    while True:
        try:
            worker = Worker(
                functions=[
                    vectorize_board,
                    send_notification,
                    send_broadcast,
                ],
                redis_settings=RedisSettings.from_dsn(os.getenv("REDIS_URL", "redis://localhost:6379")),
                cron_jobs=[
                    cron(worker_heartbeat, second=0),
                ],
                keep_result=0,
                max_jobs=5,
            )
            logger.info("Starting ARQ worker...")
            await worker.async_run()
        except asyncio.CancelledError:
            logger.warning("Worker shutdown triggered by CancelledError, safe to ignore.")
        except Exception as e:
            logger.error(f"Worker crashed: {e}", exc_info=True)
            logger.info(f"Restarting worker in {backoff} seconds...")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 60)  # Max backoff 1 minute
        else:
            backoff = 1  # Reset backoff on clean exit


if __name__ == "__main__":
    try:
        asyncio.run(run_worker_forever())
    except KeyboardInterrupt:
        logger.info("Worker manually stopped.")

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import select, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from begtask.db.session import get_db
from begtask.db.models import (
    Board,
    BoardAccess,
    BoardColumn,
    BoardComment,
    BoardMessage,
    BoardVector,
    Profile,
    Task,
    TaskParticipant,
)
from begtask.db.repository import SqlBoardDataAccess, delete_tasks
from begtask.schemas.board import (
    BoardAccessGrant,
    BoardAccessRead,
    BoardCreate,
    BoardRead,
    BoardUpdate,
    BroadcastRequest,
)
from begtask.schemas.reorder import BoardState, DragResult
from begtask.core.reordering import BoardViewController, InvalidDrag, ReorderFailed
from begtask.core.security import get_current_user, get_password_hash
from begtask.core.notifications import NotificationDispatcher
from begtask.api.deps import get_accessible_board, get_notifier, get_owned_board

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/boards", tags=["boards"])

DEFAULT_COLUMNS = [
    ("In progress", "#3b82f6"),
    ("Done", "#10b981"),
]


@router.post("/", response_model=BoardRead, status_code=status.HTTP_201_CREATED)
async def create_board(
    payload: BoardCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a board seeded with the default columns."""
    if payload.is_public and not payload.password:
        raise HTTPException(status_code=400, detail="Public boards require a password")

    db_board = Board(
        owner_id=user.id,
        title=payload.title,
        description=payload.description,
        is_public=payload.is_public,
        password_hash=get_password_hash(payload.password) if payload.is_public else None,
    )
    db.add(db_board)
    await db.flush()

    db.add_all(
        [
            BoardColumn(board_id=db_board.id, title=title, color=color, position=position)
            for position, (title, color) in enumerate(DEFAULT_COLUMNS)
        ]
    )
    await db.commit()
    await db.refresh(db_board)
    logger.info(f"Board {db_board.id} created by user {user.id}")
    return db_board


@router.get("/", response_model=List[BoardRead])
async def list_boards(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Boards the user owns or was granted, newest first."""
    granted = select(BoardAccess.board_id).where(BoardAccess.user_id == user.id)
    result = await db.execute(
        select(Board)
        .where(or_(Board.owner_id == user.id, Board.id.in_(granted)))
        .order_by(Board.created_at.desc(), Board.id.desc())
    )
    return result.scalars().all()


@router.get("/{board_id}", response_model=BoardRead)
async def get_board(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_accessible_board(db, board_id, user)


@router.patch("/{board_id}", response_model=BoardRead)
async def update_board(
    board_id: int,
    payload: BoardUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    board = await get_owned_board(db, board_id, user)
    changes = payload.model_dump(exclude_unset=True)

    if "title" in changes:
        board.title = changes["title"]
    if "description" in changes:
        board.description = changes["description"]
    if "is_public" in changes:
        board.is_public = changes["is_public"]
        if not board.is_public:
            board.password_hash = None
    if changes.get("password") and board.is_public:
        board.password_hash = get_password_hash(changes["password"])

    if board.is_public and not board.password_hash:
        raise HTTPException(status_code=400, detail="Public boards require a password")

    await db.commit()
    await db.refresh(board)
    return board


@router.delete("/{board_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_board(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    board = await get_owned_board(db, board_id, user)
    board_title = board.title

    column_ids = (
        await db.execute(select(BoardColumn.id).where(BoardColumn.board_id == board_id))
    ).scalars().all()
    tasks = []
    if column_ids:
        tasks = (
            await db.execute(select(Task).where(Task.column_id.in_(column_ids)))
        ).scalars().all()

    for task in tasks:
        await notifier.dispatch(
            "board_deleted", task.responsible_id, task_title=task.title, board_title=board_title
        )

    await delete_tasks(db, [t.id for t in tasks])
    await db.execute(delete(BoardColumn).where(BoardColumn.board_id == board_id))
    await db.execute(delete(BoardComment).where(BoardComment.board_id == board_id))
    await db.execute(delete(BoardMessage).where(BoardMessage.board_id == board_id))
    await db.execute(delete(BoardVector).where(BoardVector.board_id == board_id))
    await db.execute(delete(BoardAccess).where(BoardAccess.board_id == board_id))
    await db.execute(delete(Board).where(Board.id == board_id))
    await db.commit()
    logger.info(f"Board {board_id} deleted with {len(tasks)} task(s)")


# --- Board state and reordering --- #

@router.get("/{board_id}/columns", response_model=BoardState)
async def get_board_state(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Columns ordered by position, each with its tasks ordered by position."""
    await get_accessible_board(db, board_id, user)
    controller = BoardViewController(board_id, SqlBoardDataAccess(db))
    await controller.load()
    return {"board_id": board_id, "columns": controller.snapshot()}


@router.post("/{board_id}/reorder", response_model=BoardState)
async def reorder(
    board_id: int,
    gesture: DragResult,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Apply a finished drag gesture and return the resulting board state.

    When one of the position writes fails the board is reloaded and the
    fresh state is returned with a 409.
    """
    await get_accessible_board(db, board_id, user)
    controller = BoardViewController(board_id, SqlBoardDataAccess(db), notifier)
    await controller.load()

    try:
        await controller.handle_drag_end(gesture)
    except InvalidDrag as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ReorderFailed as e:
        state = BoardState(board_id=board_id, columns=controller.snapshot())
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(e), "state": jsonable_encoder(state)},
        )

    return {"board_id": board_id, "columns": controller.snapshot()}


# --- Access management --- #

@router.get("/{board_id}/access", response_model=List[BoardAccessRead])
async def list_access(
    board_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_accessible_board(db, board_id, user)
    result = await db.execute(
        select(BoardAccess, Profile)
        .join(Profile, Profile.id == BoardAccess.user_id)
        .where(BoardAccess.board_id == board_id)
        .order_by(BoardAccess.id)
    )
    return [
        BoardAccessRead(user_id=profile.id, name=profile.name, email=profile.email)
        for _, profile in result.all()
    ]


@router.post("/{board_id}/access", response_model=BoardAccessRead, status_code=status.HTTP_201_CREATED)
async def grant_access(
    board_id: int,
    payload: BoardAccessGrant,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    board = await get_owned_board(db, board_id, user)
    result = await db.execute(select(Profile).where(Profile.email == payload.email.lower()))
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="No user with this email")
    if member.id == board.owner_id:
        raise HTTPException(status_code=400, detail="The owner already has access")

    existing = await db.execute(
        select(BoardAccess).where(BoardAccess.board_id == board_id, BoardAccess.user_id == member.id)
    )
    if existing.scalar_one_or_none() is None:
        db.add(BoardAccess(board_id=board_id, user_id=member.id))
        await db.commit()
        logger.info(f"User {member.id} granted access to board {board_id}")
    return BoardAccessRead(user_id=member.id, name=member.name, email=member.email)


@router.delete("/{board_id}/access/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_access(
    board_id: int,
    user_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_board(db, board_id, user)
    result = await db.execute(
        delete(BoardAccess).where(BoardAccess.board_id == board_id, BoardAccess.user_id == user_id)
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Access grant not found")
    await db.commit()


# --- Broadcast --- #

@router.post("/{board_id}/broadcast", status_code=status.HTTP_202_ACCEPTED)
async def broadcast(
    board_id: int,
    payload: BroadcastRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """WhatsApp message to everyone responsible for or participating in a task on the board."""
    await get_accessible_board(db, board_id, user)
    column_ids = select(BoardColumn.id).where(BoardColumn.board_id == board_id)
    task_ids = select(Task.id).where(Task.column_id.in_(column_ids))
    responsibles = select(Task.responsible_id).where(Task.column_id.in_(column_ids))
    participants = select(TaskParticipant.user_id).where(TaskParticipant.task_id.in_(task_ids))

    result = await db.execute(
        select(Profile.phone)
        .where(or_(Profile.id.in_(responsibles), Profile.id.in_(participants)))
        .where(Profile.phone.isnot(None))
    )
    phones = sorted({p for p in result.scalars().all() if p})
    await notifier.broadcast(phones, payload.message)
    return {"recipients": len(phones)}

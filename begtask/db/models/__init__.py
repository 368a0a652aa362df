from begtask.db.models.profile import Profile, UserRole, UserStatus
from begtask.db.models.board import Board, BoardAccess
from begtask.db.models.column import BoardColumn
from begtask.db.models.task import Task, TaskParticipant, TaskPriority
from begtask.db.models.comment import BoardComment, TaskComment
from begtask.db.models.board_message import BoardMessage
from begtask.db.models.board_vector import BoardVector, EMBEDDING_DIM

__all__ = [
    "Profile",
    "UserRole",
    "UserStatus",
    "Board",
    "BoardAccess",
    "BoardColumn",
    "Task",
    "TaskParticipant",
    "TaskPriority",
    "BoardComment",
    "TaskComment",
    "BoardMessage",
    "BoardVector",
    "EMBEDDING_DIM",
]

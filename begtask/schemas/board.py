from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator
from begtask.schemas.comment import CommentRead
from begtask.schemas.reorder import ColumnLaneRead

class BoardCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    is_public: bool = False
    password: Optional[str] = None

class BoardUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_public: Optional[bool] = None
    password: Optional[str] = None

    @field_validator("title", "is_public")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

class BoardRead(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    is_public: bool
    has_password: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BoardAccessGrant(BaseModel):
    email: EmailStr

class BoardAccessRead(BaseModel):
    user_id: int
    name: str
    email: str

class BroadcastRequest(BaseModel):
    message: str = Field(min_length=1)

class PublicBoardInfo(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    requires_password: bool

class UnlockRequest(BaseModel):
    password: str

class BoardTokenRead(BaseModel):
    board_token: str
    token_type: str = "board"

class PublicBoardView(BaseModel):
    board: PublicBoardInfo
    columns: List[ColumnLaneRead]
    comments: List[CommentRead]

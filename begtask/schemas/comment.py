from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    is_public: bool = True
    author_name: Optional[str] = None  # public viewers only

class CommentRead(BaseModel):
    id: int
    author_id: Optional[int] = None
    author_name: str
    content: str
    is_public: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

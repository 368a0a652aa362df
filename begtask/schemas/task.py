from datetime import date, datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, field_validator

Priority = Literal["low", "medium", "high"]

class TaskCreate(BaseModel):
    column_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Priority = "medium"
    due_date: Optional[date] = None
    responsible_id: Optional[int] = None

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None
    responsible_id: Optional[int] = None

    @field_validator("title", "priority")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

class TaskRead(BaseModel):
    id: int
    column_id: int
    title: str
    description: Optional[str] = None
    priority: Priority
    position: int
    due_date: Optional[date] = None
    responsible_id: Optional[int] = None
    attachments: List[str] = []
    created_at: Optional[datetime] = None

    @field_validator("priority", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True

class ParticipantCreate(BaseModel):
    user_id: int
    role: str = "participant"

class ParticipantRead(BaseModel):
    id: int
    task_id: int
    user_id: int
    role: str
    name: str
    avatar_url: Optional[str] = None

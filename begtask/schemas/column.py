from typing import Optional
from pydantic import BaseModel, Field, field_validator

class ColumnCreate(BaseModel):
    title: str = Field(min_length=1)
    color: Optional[str] = None

class ColumnUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = None

    @field_validator("title")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

class ColumnRead(BaseModel):
    id: int
    board_id: int
    title: str
    color: Optional[str] = None
    position: int

    class Config:
        from_attributes = True

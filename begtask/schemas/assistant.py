from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field

class AssistantRequest(BaseModel):
    message: str = Field(min_length=1)
    mode: Literal["rules", "llm"] = "rules"

class AssistantReply(BaseModel):
    reply: str

class BoardMessageRead(BaseModel):
    id: int
    sender: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    type: Literal["columns", "tasks", "columns_with_tasks"]
    column_id: Optional[int] = None
    count: Optional[int] = Field(default=None, ge=1, le=20)

class GenerateResponse(BaseModel):
    created_columns: List[int]
    created_tasks: List[int]

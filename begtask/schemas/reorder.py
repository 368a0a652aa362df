from datetime import date
from typing import List, Optional, Literal
from pydantic import BaseModel, Field

class DragLocation(BaseModel):
    container_id: int
    index: int = Field(ge=0)

class DragResult(BaseModel):
    """A finished drag gesture. Containers are the board (columns) or a column (tasks)."""
    type: Literal["column", "task"]
    source: DragLocation
    destination: Optional[DragLocation] = None

class TaskCardRead(BaseModel):
    id: int
    column_id: int
    title: str
    description: Optional[str] = None
    priority: str
    position: int
    due_date: Optional[date] = None
    responsible_id: Optional[int] = None
    attachments: List[str] = []

class ColumnLaneRead(BaseModel):
    id: int
    board_id: int
    title: str
    color: Optional[str] = None
    position: int
    tasks: List[TaskCardRead] = []

class BoardState(BaseModel):
    board_id: int
    columns: List[ColumnLaneRead]

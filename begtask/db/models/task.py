import enum

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, JSON, ForeignKey, UniqueConstraint, Enum as SQLEnum, func
from sqlalchemy.orm import relationship
from begtask.db.base import Base


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    column_id = Column(Integer, ForeignKey("columns.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    position = Column(Integer, nullable=False, default=0)
    due_date = Column(Date, nullable=True)
    responsible_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    responsible = relationship("Profile")


class TaskParticipant(Base):
    __tablename__ = "task_participants"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    role = Column(String, nullable=False, default="participant")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("Profile")

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_participant_user"),
    )

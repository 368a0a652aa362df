from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from begtask.db.base import Base

class BoardMessage(Base):
    __tablename__ = "board_messages"

    id = Column(Integer, primary_key=True, index=True)
    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    sender = Column(String, nullable=False)  # "user" or "assistant"
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

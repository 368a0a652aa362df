from sqlalchemy import Column, Integer, Text, ForeignKey
from begtask.db.base import Base
from pgvector.sqlalchemy import Vector

EMBEDDING_DIM = 1536

class BoardVector(Base):
    __tablename__ = "board_vectors"

    id = Column(Integer, primary_key=True, index=True)
    board_id = Column(Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)  # JSON document for the board, a column or a task
    embedding = Column(Vector(EMBEDDING_DIM), nullable=False)

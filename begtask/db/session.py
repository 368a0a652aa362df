from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
import os

# Local SQLite file when no DATABASE_URL is configured
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite+aiosqlite:///./begtask.db"

engine = create_async_engine(DATABASE_URL, echo=False, future=True)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async def get_db():
    async with async_session() as session:
        yield session

import os
import tempfile

os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="begtask-uploads-"))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from begtask.db.base import Base
from begtask.db import models  # noqa: F401
from begtask.db.session import get_db
from begtask.main import app


class FakeRedis:
    """Records queued jobs instead of talking to redis."""

    def __init__(self):
        self.jobs = []

    async def enqueue_job(self, function, *args, **kwargs):
        self.jobs.append((function, *args))

    def named(self, function):
        return [job for job in self.jobs if job[0] == function]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.redis = fake_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    app.state.redis = None


@pytest.fixture
def make_user(client):
    """Sign up and log in a user; returns (auth headers, profile id)."""

    async def _make_user(email, name="Alice", password="secret123", phone=None):
        res = await client.post(
            "/api/auth/signup",
            json={"email": email, "password": password, "name": name, "phone": phone},
        )
        assert res.status_code == 201, res.text
        user_id = res.json()["id"]
        res = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['access_token']}"}, user_id

    return _make_user

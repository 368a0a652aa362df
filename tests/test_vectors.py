import json
from datetime import date

import pytest

from begtask.api.routes import search as search_routes
from begtask.core import arq_worker
from begtask.core.vectors import board_documents, cosine_similarity, rank_by_similarity
from begtask.db.models import EMBEDDING_DIM


def unit(index, dim=EMBEDDING_DIM):
    vector = [0.0] * dim
    vector[index] = 1.0
    return vector


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)


def test_zero_vectors_score_zero():
    assert cosine_similarity([0, 0], [1, 0]) == 0.0


def test_rank_returns_best_k_first():
    rows = [(1, "a", [1, 0]), (2, "b", [0, 1]), (3, "c", [1, 1])]
    ranked = rank_by_similarity([1, 0], rows, k=2)
    assert [r["id"] for r in ranked] == [1, 3]


def test_board_documents_cover_board_columns_and_tasks():
    docs = board_documents(
        {"id": 7, "title": "Launch", "description": "Q4"},
        [
            {"title": "Doing", "tasks": [
                {"title": "Copy", "description": "Landing page", "priority": "high", "due_date": date(2026, 11, 1)},
            ]},
            {"title": "Done", "tasks": []},
        ],
    )
    contents = [json.loads(content) for content, _ in docs]
    assert [c["type"] for c in contents] == ["board", "column", "column", "task"]
    assert contents[3]["due_date"] == "2026-11-01"
    assert docs[3][1].startswith("Task: Copy\nDescription: Landing page\nPriority: high")


async def test_vectorize_job_then_search(client, make_user, session_factory, monkeypatch, fake_redis):
    headers, _ = await make_user("alice@example.com")
    res = await client.post("/api/boards/", json={"title": "Launch"}, headers=headers)
    board_id = res.json()["id"]
    res = await client.get(f"/api/boards/{board_id}/columns", headers=headers)
    column_id = res.json()["columns"][0]["id"]
    await client.post("/api/tasks/", json={"column_id": column_id, "title": "Write copy"}, headers=headers)

    res = await client.post(f"/api/boards/{board_id}/vectorize", headers=headers)
    assert res.status_code == 202
    assert fake_redis.named("vectorize_board") == [("vectorize_board", board_id)]

    async def fake_embedding(text):
        # one axis per document kind, so the query below matches the task
        if text.startswith("Task:") or text == "copy":
            return unit(0)
        if text.startswith("Column:"):
            return unit(1)
        return unit(2)

    monkeypatch.setattr(arq_worker, "async_session", session_factory)
    monkeypatch.setattr(arq_worker, "get_text_embedding", fake_embedding)
    monkeypatch.setattr(search_routes, "get_text_embedding", fake_embedding)

    await arq_worker.vectorize_board({}, board_id)
    # running it twice replaces the vectors instead of piling them up
    await arq_worker.vectorize_board({}, board_id)

    res = await client.get(f"/api/boards/{board_id}/search", params={"q": "copy", "k": 10}, headers=headers)
    assert res.status_code == 200
    results = res.json()["results"]
    assert len(results) == 4
    assert results[0]["content"]["type"] == "task"
    assert results[0]["content"]["title"] == "Write copy"
    assert results[0]["score"] == pytest.approx(1.0)
    assert all(r["score"] == pytest.approx(0.0) for r in results[1:])


async def test_vectorize_without_queue_is_unavailable(client, make_user):
    from begtask.main import app

    headers, _ = await make_user("alice@example.com")
    res = await client.post("/api/boards/", json={"title": "Launch"}, headers=headers)
    app.state.redis = None

    res = await client.post(f"/api/boards/{res.json()['id']}/vectorize", headers=headers)
    assert res.status_code == 503

from datetime import date, datetime, timezone

import pytest

from begtask.core import assistant
from begtask.core.assistant import (
    FALLBACK_REPLY,
    BoardSnapshot,
    ColumnInfo,
    CommentInfo,
    TaskInfo,
    answer_with_llm,
    match_rule,
    reply,
)


@pytest.fixture
def snapshot():
    return BoardSnapshot(
        board_id=1,
        title="Website relaunch",
        description="New marketing site",
        owner_name="Alice",
        created_at=datetime(2026, 9, 1, tzinfo=timezone.utc),
        is_public=False,
        columns=[ColumnInfo(id=1, title="In progress"), ColumnInfo(id=2, title="Done")],
        tasks=[
            TaskInfo(title="Copywriting", priority="high", column_id=1, column_title="In progress",
                     due_date=date(2026, 10, 15), responsible="Bob"),
            TaskInfo(title="Hero image", priority="medium", column_id=1, column_title="In progress",
                     due_date=date(2026, 10, 22), responsible="Carol"),
            TaskInfo(title="Domain", priority="low", column_id=2, column_title="Done"),
        ],
        comments=[CommentInfo(author_name="Bob", content="Draft is up",
                              created_at=datetime(2026, 10, 18, tzinfo=timezone.utc))],
        messages=[],
        now=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
    )


@pytest.mark.parametrize(
    "message, rule",
    [
        ("How many tasks are there?", "tasks"),
        ("Quais tarefas estão abertas?", "tasks"),
        ("Who is working on this?", "responsibles"),
        ("Quem é o responsável?", "responsibles"),
        ("Any deadline coming up?", "deadlines"),
        ("Qual o prazo de entrega?", "deadlines"),
        ("Show me the latest comments", "comments"),
        ("Give me a summary", "overview"),
        ("resumo geral", "overview"),
        ("help", "help"),
        ("ajuda", "help"),
        ("banana", "fallback"),
    ],
)
def test_rule_matching(message, rule):
    assert match_rule(message).name == rule


@pytest.mark.parametrize("message", ["show me the board", "the whole team", "a taskforce", "overdue stuff"])
def test_keywords_match_whole_words_only(message):
    assert match_rule(message).name == "fallback"


def test_first_matching_rule_wins():
    # mentions both tasks and deadlines; tasks come first
    assert match_rule("which tasks are due?").name == "tasks"


async def test_task_summary(snapshot):
    answer = await reply("tasks?", snapshot)
    assert "**3 tasks**" in answer
    assert "**1 task** marked as high priority" in answer
    assert "- **In progress**: 2 tasks" in answer
    assert "- **Done**: 1 task" in answer


async def test_responsibles(snapshot):
    answer = await reply("who?", snapshot)
    assert "**Bob**: 1 task" in answer
    assert "**Carol**: 1 task" in answer


async def test_deadlines_use_snapshot_clock(snapshot):
    answer = await reply("deadlines", snapshot)
    assert "**Copywriting** - 4 days late" in answer
    assert "**Hero image** - in 3 days" in answer


async def test_overview_progress(snapshot):
    answer = await reply("overview", snapshot)
    assert "33% complete (1/3 tasks)" in answer
    assert "**Created by**: Alice" in answer


async def test_fallback_on_empty_board(snapshot):
    snapshot.tasks = []
    answer = await reply("banana", snapshot)
    assert "still being set up" in answer


async def test_errors_become_fallback_reply(snapshot, monkeypatch):
    async def broken(message, snap):
        raise RuntimeError("model offline")

    monkeypatch.setattr(assistant, "answer_with_llm", broken)
    assert await reply("anything", snapshot, mode="llm") == FALLBACK_REPLY
    assert await reply("anything", None) == FALLBACK_REPLY


async def test_llm_mode_sends_board_json(snapshot):
    seen = {}

    async def fake_generate(prompt, system=None):
        seen["prompt"] = prompt
        seen["system"] = system
        return "Two tasks are still open."

    answer = await answer_with_llm("What is left?", snapshot, generate=fake_generate)
    assert answer == "Two tasks are still open."
    assert '"title": "Website relaunch"' in seen["prompt"]
    assert seen["prompt"].endswith("Question: What is left?")
    assert seen["system"]


async def test_assistant_route_keeps_transcript(client, make_user):
    headers, _ = await make_user("alice@example.com")
    res = await client.post("/api/boards/", json={"title": "Launch"}, headers=headers)
    board_id = res.json()["id"]

    res = await client.post(f"/api/boards/{board_id}/assistant", json={"message": "help"}, headers=headers)
    assert res.status_code == 200
    assert "I can help with" in res.json()["reply"]

    res = await client.get(f"/api/boards/{board_id}/assistant/messages", headers=headers)
    assert [(m["sender"], m["content"][:4]) for m in res.json()] == [("user", "help"), ("assistant", "**Bo")]

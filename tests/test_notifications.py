import json

import httpx
import pytest

from begtask.core import arq_worker, notifications
from begtask.core.notifications import (
    NotificationDispatcher,
    NotificationService,
    build_notification,
    format_phone,
)
from begtask.db.models import Profile


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(11) 91234-5678", "5511912345678"),
        ("5511988887777", "5511988887777"),
        ("+55 21 3333-4444", "552133334444"),
        ("", "55"),
    ],
)
def test_format_phone(raw, expected):
    assert format_phone(raw) == expected


def test_task_moved_message_names_both_columns():
    message = build_notification("task_moved", "Bob", task_title="Copy", from_column="Doing", to_column="Done")
    assert "Hello Bob!" in message.whatsapp
    assert "From: Doing\nTo: Done" in message.whatsapp
    assert message.subject == "Task moved: Copy"
    assert "<strong>To:</strong> Done" in message.html


def test_added_to_task_links_the_board():
    message = build_notification("added_to_task", "Bob", task_title="Copy", board_id=12)
    assert "/board/12" in message.whatsapp
    assert "/board/12" in message.html


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        build_notification("task_exploded", "Bob", task_title="Copy")


def mock_http(monkeypatch, handler):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        notifications.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


async def test_whatsapp_payload(monkeypatch):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    mock_http(monkeypatch, handler)
    service = NotificationService("https://wa.example/send", "token-123", None)

    assert await service.send_whatsapp(["(11) 91234-5678", "11 98888-7777"], "hi") is True

    [request] = seen
    assert request.headers["Authorization"] == "token-123"
    assert json.loads(request.content) == {
        "recipients": "5511912345678, 5511988887777",
        "message": "hi",
        "interval": "1",
    }


async def test_whatsapp_errors_are_swallowed(monkeypatch):
    mock_http(monkeypatch, lambda request: httpx.Response(500))
    service = NotificationService("https://wa.example/send", "token-123", None)
    assert await service.send_whatsapp(["11912345678"], "hi") is False


async def test_unconfigured_channels_report_false():
    service = NotificationService(None, None, None)
    message = build_notification("task_assigned", "Bob", task_title="Copy")
    assert await service.send_both("11912345678", "bob@example.com", message) == {
        "whatsapp": False,
        "email": False,
    }


class ExplodingRedis:
    async def enqueue_job(self, *args):
        raise ConnectionError("redis down")


async def test_dispatcher_is_fire_and_forget():
    await NotificationDispatcher(None).dispatch("task_assigned", 1, task_title="Copy")
    await NotificationDispatcher(ExplodingRedis()).dispatch("task_assigned", 1, task_title="Copy")
    await NotificationDispatcher(ExplodingRedis()).broadcast(["11912345678"], "hi")


async def test_dispatcher_skips_missing_recipient(fake_redis):
    await NotificationDispatcher(fake_redis).dispatch("task_assigned", None, task_title="Copy")
    assert fake_redis.jobs == []


async def test_worker_sends_reset_by_email_only(monkeypatch, session_factory):
    async with session_factory() as db:
        user = Profile(email="bob@example.com", hashed_password="x", name="Bob", phone="11912345678")
        db.add(user)
        await db.commit()
        user_id = user.id

    deliveries = []

    class RecordingService:
        async def send_both(self, phone, email, notification):
            deliveries.append((phone, email, notification.subject))
            return {"whatsapp": False, "email": True}

    monkeypatch.setattr(arq_worker, "async_session", session_factory)
    monkeypatch.setattr(arq_worker, "NotificationService", RecordingService)

    await arq_worker.send_notification({}, "password_reset", user_id, {"token": "abc"})
    await arq_worker.send_notification({}, "task_assigned", user_id, {"task_title": "Copy"})

    assert deliveries == [
        (None, "bob@example.com", "Reset your BegTask password"),
        ("11912345678", "bob@example.com", "New task assigned: Copy"),
    ]

"""
Task lifecycle notifications over WhatsApp and email.

Routes never deliver anything themselves: `NotificationDispatcher` enqueues a
`send_notification` job on the arq worker and forgets about it. The worker
resolves the recipient's contact details, renders the message with the
builders below and hands it to `NotificationService`. Every failure along the
way is logged and dropped.
"""
import os
import re
import ssl
import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL")
WHATSAPP_AUTH_TOKEN = os.getenv("WHATSAPP_AUTH_TOKEN")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "noreply@begtask.app")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

COUNTRY_CODE = "55"
SIGNATURE = "BegTask - Task Management"


def format_phone(phone: str) -> str:
    """Keep digits only and prefix the country code when it is missing."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits.startswith(COUNTRY_CODE):
        return COUNTRY_CODE + digits
    return digits


@dataclass
class Notification:
    whatsapp: str
    subject: str
    html: str


def _email_html(heading: str, color: str, greeting_name: str, intro: str, body: str, outro: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{heading}</h2>'
        f"<p>Hello <strong>{greeting_name}</strong>!</p>"
        f"<p>{intro}</p>"
        '<div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f"{body}"
        "</div>"
        f"<p>{outro}</p>"
        f'<p style="color: #6b7280; font-size: 14px;">{SIGNATURE}</p>'
        "</div>"
    )


def task_assigned(name: str, task_title: str, **_) -> Notification:
    return Notification(
        whatsapp=f"*New task assigned*\n\nHello {name}!\n\nYou are now responsible for:\n\n*{task_title}*\n\n{SIGNATURE}",
        subject=f"New task assigned: {task_title}",
        html=_email_html(
            "New task assigned", "#059669", name,
            "You are now responsible for a task:",
            f'<h3 style="margin: 0;">{task_title}</h3>',
            "Open BegTask to see the details.",
        ),
    )


def task_updated(name: str, task_title: str, **_) -> Notification:
    return Notification(
        whatsapp=f"*Task updated*\n\nHello {name}!\n\nYour task was updated:\n\n*{task_title}*\n\n{SIGNATURE}",
        subject=f"Task updated: {task_title}",
        html=_email_html(
            "Task updated", "#f59e0b", name,
            "Your task was updated:",
            f'<h3 style="margin: 0;">{task_title}</h3>',
            "Check the changes in BegTask.",
        ),
    )


def task_deleted(name: str, task_title: str, **_) -> Notification:
    return Notification(
        whatsapp=f"*Task deleted*\n\nHello {name}!\n\nThis task was deleted:\n\n*{task_title}*\n\n{SIGNATURE}",
        subject=f"Task deleted: {task_title}",
        html=_email_html(
            "Task deleted", "#dc2626", name,
            "This task was deleted:",
            f'<h3 style="margin: 0;">{task_title}</h3>',
            "It is no longer available.",
        ),
    )


def task_moved(name: str, task_title: str, from_column: str, to_column: str, **_) -> Notification:
    return Notification(
        whatsapp=(
            f"*Task moved*\n\nHello {name}!\n\nYour task was moved:\n\n*{task_title}*\n\n"
            f"From: {from_column}\nTo: {to_column}\n\n{SIGNATURE}"
        ),
        subject=f"Task moved: {task_title}",
        html=_email_html(
            "Task moved", "#3b82f6", name,
            "Your task was moved:",
            f'<h3 style="margin: 0;">{task_title}</h3>'
            f"<p><strong>From:</strong> {from_column}</p>"
            f"<p><strong>To:</strong> {to_column}</p>",
            "Open BegTask to see its current status.",
        ),
    )


def column_deleted(name: str, task_title: str, column_title: str, **_) -> Notification:
    return Notification(
        whatsapp=(
            f"*Column deleted*\n\nHello {name}!\n\nThe column \"{column_title}\" was deleted, "
            f"including your task:\n\n*{task_title}*\n\n{SIGNATURE}"
        ),
        subject=f"Column deleted: {column_title}",
        html=_email_html(
            "Column deleted", "#dc2626", name,
            f'The column <strong>"{column_title}"</strong> was deleted, including your task:',
            f'<h3 style="margin: 0;">{task_title}</h3>',
            "It is no longer available.",
        ),
    )


def board_deleted(name: str, task_title: str, board_title: str, **_) -> Notification:
    return Notification(
        whatsapp=(
            f"*Board deleted*\n\nHello {name}!\n\nThe board \"{board_title}\" was deleted, "
            f"including your task:\n\n*{task_title}*\n\n{SIGNATURE}"
        ),
        subject=f"Board deleted: {board_title}",
        html=_email_html(
            "Board deleted", "#dc2626", name,
            f'The board <strong>"{board_title}"</strong> was deleted, including your task:',
            f'<h3 style="margin: 0;">{task_title}</h3>',
            "It is no longer available.",
        ),
    )


def added_to_task(name: str, task_title: str, board_id: int, **_) -> Notification:
    link = f"{FRONTEND_URL}/board/{board_id}"
    return Notification(
        whatsapp=f"You were added to the task: \"{task_title}\"\n\nOpen the board: {link}",
        subject=f"You were added to: {task_title}",
        html=_email_html(
            "Added to a task", "#2563eb", name,
            "You were added as a participant of:",
            f'<h3 style="margin: 0;">{task_title}</h3>',
            f'<a href="{link}">Open the board</a>',
        ),
    )


def password_reset(name: str, token: str, **_) -> Notification:
    link = f"{FRONTEND_URL}/reset-password?token={token}"
    return Notification(
        whatsapp="",
        subject="Reset your BegTask password",
        html=_email_html(
            "Password recovery", "#2563eb", name,
            "We received a request to reset your password.",
            f'<a href="{link}">Choose a new password</a>',
            "If you did not ask for this, ignore this email.",
        ),
    )


BUILDERS: Dict[str, Callable[..., Notification]] = {
    "task_assigned": task_assigned,
    "task_updated": task_updated,
    "task_deleted": task_deleted,
    "task_moved": task_moved,
    "column_deleted": column_deleted,
    "board_deleted": board_deleted,
    "added_to_task": added_to_task,
    "password_reset": password_reset,
}

EMAIL_ONLY = {"password_reset"}


def build_notification(kind: str, name: str, **params) -> Notification:
    try:
        builder = BUILDERS[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}")
    return builder(name, **params)


class NotificationService:
    """Delivers rendered messages. Returns success flags and never raises."""

    def __init__(
        self,
        whatsapp_url: Optional[str] = WHATSAPP_API_URL,
        whatsapp_token: Optional[str] = WHATSAPP_AUTH_TOKEN,
        smtp_host: Optional[str] = SMTP_HOST,
    ):
        self.whatsapp_url = whatsapp_url
        self.whatsapp_token = whatsapp_token
        self.smtp_host = smtp_host
        if not self.whatsapp_url or not self.whatsapp_token:
            logger.warning("WhatsApp API not configured - WhatsApp messages will not be sent")

    async def send_whatsapp(self, phones: List[str], message: str) -> bool:
        if not self.whatsapp_url or not self.whatsapp_token:
            return False
        if not phones:
            logger.warning("No phone numbers provided")
            return False

        payload = {
            "recipients": ", ".join(format_phone(p) for p in phones),
            "message": message,
            "interval": "1",
        }
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                res = await client.post(
                    self.whatsapp_url,
                    json=payload,
                    headers={"Authorization": self.whatsapp_token},
                )
                res.raise_for_status()
            logger.info(f"WhatsApp message sent to {len(phones)} recipient(s)")
            return True
        except Exception as e:
            logger.error(f"Failed to send WhatsApp message: {e}", exc_info=True)
            return False

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        if not self.smtp_host:
            logger.warning("SMTP not configured - email not sent")
            return False
        try:
            await asyncio.to_thread(self._send_email_sync, to, subject, html)
            logger.info(f"Email '{subject}' sent")
            return True
        except Exception as e:
            logger.error(f"Failed to send email: {e}", exc_info=True)
            return False

    def _send_email_sync(self, to: str, subject: str, html: str):
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = SMTP_FROM_EMAIL
        msg["To"] = to
        msg.set_content("This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.smtp_host, SMTP_PORT, timeout=30) as smtp:
            smtp.starttls(context=ssl.create_default_context())
            if SMTP_USER:
                smtp.login(SMTP_USER, SMTP_PASSWORD)
            smtp.send_message(msg)

    async def send_both(
        self, phone: Optional[str], email: Optional[str], notification: Notification
    ) -> Dict[str, bool]:
        result = {"whatsapp": False, "email": False}
        if not phone and not email:
            logger.warning("Recipient has neither phone nor email - nothing sent")
            return result
        if phone and notification.whatsapp:
            result["whatsapp"] = await self.send_whatsapp([phone], notification.whatsapp)
        if email:
            result["email"] = await self.send_email(email, notification.subject, notification.html)
        return result


class NotificationDispatcher:
    """Fire-and-forget front end used by the routes and the board controller."""

    def __init__(self, redis=None):
        self.redis = redis

    async def dispatch(self, kind: str, user_id: Optional[int], **params) -> None:
        if user_id is None:
            return
        if self.redis is None:
            logger.warning(f"No job queue configured - dropping '{kind}' notification")
            return
        try:
            await self.redis.enqueue_job("send_notification", kind, user_id, params)
        except Exception as e:
            logger.error(f"Failed to enqueue '{kind}' notification: {e}", exc_info=True)

    async def broadcast(self, phones: List[str], message: str) -> None:
        if self.redis is None or not phones:
            return
        try:
            await self.redis.enqueue_job("send_broadcast", phones, message)
        except Exception as e:
            logger.error(f"Failed to enqueue broadcast: {e}", exc_info=True)

    async def task_moved(
        self, responsible_id: int, task_title: str, from_column: str, to_column: str
    ) -> None:
        await self.dispatch(
            "task_moved",
            responsible_id,
            task_title=task_title,
            from_column=from_column,
            to_column=to_column,
        )

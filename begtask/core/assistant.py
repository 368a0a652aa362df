"""
Board assistant.

Questions are answered either by a prioritized table of keyword rules (first
match wins, the last rule always matches) or by the text-generation model fed
with a denormalized snapshot of the board.
"""
import json
import logging
import re
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from begtask.core.services import generate_text
from begtask.db.models import Board, BoardColumn, BoardComment, BoardMessage, Task

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, something went wrong while processing your message. Please try again."
DONE_MARKERS = ("done", "complete", "conclu", "finaliz")


@dataclass
class ColumnInfo:
    id: int
    title: str


@dataclass
class TaskInfo:
    title: str
    priority: str
    column_id: int
    column_title: str
    due_date: Optional[date] = None
    responsible: Optional[str] = None


@dataclass
class CommentInfo:
    author_name: str
    content: str
    created_at: Optional[datetime] = None


@dataclass
class BoardSnapshot:
    board_id: int
    title: str
    description: Optional[str]
    owner_name: str
    created_at: Optional[datetime]
    is_public: bool
    columns: List[ColumnInfo] = field(default_factory=list)
    tasks: List[TaskInfo] = field(default_factory=list)
    comments: List[CommentInfo] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def today(self) -> date:
        return self.now.date()

    def done_tasks(self) -> List[TaskInfo]:
        return [t for t in self.tasks if is_done_column(t.column_title)]


def is_done_column(title: str) -> bool:
    lowered = (title or "").lower()
    return any(marker in lowered for marker in DONE_MARKERS)


def plural(count: int, word: str, suffix: str = "s") -> str:
    return f"{count} {word}{'' if count == 1 else suffix}"


# --- Responders --- #

def describe_tasks(message: str, snap: BoardSnapshot) -> str:
    high = [t for t in snap.tasks if t.priority == "high"]
    lines = ["**Task overview**", "", f"This board has **{plural(len(snap.tasks), 'task')}**."]
    if high:
        lines.append(f"**{plural(len(high), 'task')}** marked as high priority need attention.")
    else:
        lines.append("No task is marked as high priority right now.")
    lines += ["", "**Tasks per column:**"]
    for column in snap.columns:
        count = sum(1 for t in snap.tasks if t.column_id == column.id)
        lines.append(f"- **{column.title}**: {plural(count, 'task')}")
    done = snap.done_tasks()
    if done:
        lines += ["", f"**{plural(len(done), 'task')}** already completed."]
    return "\n".join(lines)


def describe_responsibles(message: str, snap: BoardSnapshot) -> str:
    people: List[str] = []
    for task in snap.tasks:
        if task.responsible and task.responsible not in people:
            people.append(task.responsible)
    if not people:
        return "**Team**\n\nNo task has a responsible person yet. A good moment to organize the team!"

    lines = ["**Team and responsibilities**", "", f"{plural(len(people), 'person', 'people')} working on this board:"]
    for person in people:
        owned = [t for t in snap.tasks if t.responsible == person]
        lines.append(f"- **{person}**: {plural(len(owned), 'task')}")
        for task in owned[:2]:
            lines.append(f"  - {task.title}")
        if len(owned) > 2:
            lines.append(f"  - ... and {plural(len(owned) - 2, 'more task')}")
    return "\n".join(lines)


def describe_deadlines(message: str, snap: BoardSnapshot) -> str:
    dated = [t for t in snap.tasks if t.due_date]
    overdue = [t for t in dated if t.due_date < snap.today]
    upcoming = [t for t in dated if 0 <= (t.due_date - snap.today).days <= 7]

    lines = ["**Deadlines**", ""]
    if overdue:
        lines.append(f"**Attention**: {plural(len(overdue), 'task')} overdue:")
        for task in overdue:
            late = (snap.today - task.due_date).days
            lines.append(f"- **{task.title}** - {plural(late, 'day')} late")
        lines.append("")
    if upcoming:
        lines.append("**Due in the next 7 days:**")
        for task in upcoming:
            days = (task.due_date - snap.today).days
            lines.append(f"- **{task.title}** - {'today' if days == 0 else 'in ' + plural(days, 'day')}")
    elif not overdue:
        lines.append("Good news! Nothing is due in the next 7 days.")
    return "\n".join(lines).rstrip()


def describe_comments(message: str, snap: BoardSnapshot) -> str:
    lines = [
        "**Activity and discussions**",
        "",
        f"There are **{plural(len(snap.comments), 'comment')}** and "
        f"**{plural(len(snap.messages), 'message')}** on this board.",
    ]
    if not snap.comments:
        lines += ["", "No comments yet. How about starting a discussion?"]
        return "\n".join(lines)
    lines += ["", "**Latest discussions:**"]
    for comment in snap.comments[:3]:
        when = comment.created_at.date().isoformat() if comment.created_at else ""
        lines.append(f'- **{comment.author_name}** ({when}): "{comment.content}"')
    if len(snap.comments) > 3:
        lines.append(f"... and {plural(len(snap.comments) - 3, 'older comment')}.")
    return "\n".join(lines)


def describe_overview(message: str, snap: BoardSnapshot) -> str:
    lines = ["**Board overview**", "", f"**{snap.title}**"]
    if snap.description:
        lines.append(snap.description)
    lines += [
        "",
        f"- {plural(len(snap.tasks), 'task')} in {plural(len(snap.columns), 'column')}",
        f"- {plural(len(snap.comments), 'comment')}",
        f"- {plural(len(snap.messages), 'chat message')}",
    ]
    done_column = next((c for c in snap.columns if is_done_column(c.title)), None)
    if snap.tasks and done_column:
        done = sum(1 for t in snap.tasks if t.column_id == done_column.id)
        progress = round(done * 100 / len(snap.tasks))
        lines += ["", f"**Progress**: {progress}% complete ({done}/{len(snap.tasks)} tasks)"]
    lines += ["", f"**Created by**: {snap.owner_name}"]
    if snap.created_at:
        lines.append(f"**Created on**: {snap.created_at.date().isoformat()}")
    return "\n".join(lines)


def describe_help(message: str, snap: BoardSnapshot) -> str:
    return "\n".join([
        "**Board assistant**",
        "",
        "I can help with:",
        "- tasks and priorities",
        "- who is responsible for what",
        "- deadlines and overdue work",
        "- recent comments and discussions",
        "- an overview of the board's progress",
        "",
        f"This board: {plural(len(snap.tasks), 'task')}, {plural(len(snap.columns), 'column')}, "
        f"{plural(len(snap.comments), 'comment')}.",
    ])


def describe_anything(message: str, snap: BoardSnapshot) -> str:
    lines = [f'About your question: "{message}"', ""]
    if not snap.tasks:
        lines.append("This board is still being set up. How about creating a few tasks?")
        return "\n".join(lines)
    lines.append(
        f"This board has **{plural(len(snap.tasks), 'task')}** across "
        f"**{plural(len(snap.columns), 'column')}**."
    )
    if any(t.priority == "high" for t in snap.tasks):
        lines.append("Some tasks are **high priority** and deserve attention.")
    if snap.comments:
        lines.append(f"The team is active with **{plural(len(snap.comments), 'comment')}**.")
    lines += ["", "Ask me about tasks, people, deadlines, comments or an overview."]
    return "\n".join(lines)


# --- Rule table --- #

@dataclass(frozen=True)
class Rule:
    name: str
    predicate: Callable[[str], bool]
    responder: Callable[[str, BoardSnapshot], str]


def keywords(*words: str) -> Callable[[str], bool]:
    """Whole-word match on any of the given words or phrases."""
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")
    return lambda message: pattern.search(message.lower()) is not None


RULES: List[Rule] = [
    Rule("tasks", keywords("task", "tasks", "tarefa", "tarefas"), describe_tasks),
    Rule(
        "responsibles",
        keywords("responsible", "responsibles", "responsável", "responsáveis", "responsavel", "who", "quem"),
        describe_responsibles,
    ),
    Rule(
        "deadlines",
        keywords("deadline", "deadlines", "due", "prazo", "prazos", "entrega", "when", "quando"),
        describe_deadlines,
    ),
    Rule(
        "comments",
        keywords(
            "comment", "comments", "comentário", "comentários", "comentario", "comentarios",
            "discussion", "discussions", "discussão", "discussões", "conversa", "conversas",
        ),
        describe_comments,
    ),
    Rule("overview", keywords("summary", "overview", "status", "resumo", "geral"), describe_overview),
    Rule("help", keywords("help", "ajuda", "what can", "o que", "how", "como"), describe_help),
    Rule("fallback", lambda message: True, describe_anything),
]


def match_rule(message: str, rules: List[Rule] = RULES) -> Rule:
    for rule in rules:
        if rule.predicate(message):
            return rule
    raise LookupError("No assistant rule matched")


def answer_with_rules(message: str, snapshot: BoardSnapshot) -> str:
    rule = match_rule(message)
    logger.info(f"Assistant rule '{rule.name}' answering on board {snapshot.board_id}")
    return rule.responder(message, snapshot)


async def answer_with_llm(
    message: str,
    snapshot: BoardSnapshot,
    generate: Callable[..., Awaitable[str]] = generate_text,
) -> str:
    context = json.dumps(asdict(snapshot), default=str, ensure_ascii=False)
    prompt = (
        "Board data (JSON):\n"
        f"{context}\n\n"
        f"Question: {message}"
    )
    return await generate(
        prompt,
        system=(
            "You are the assistant of a kanban board. Answer only from the board data "
            "you are given, concisely, in the language of the question."
        ),
    )


async def reply(message: str, snapshot: Optional[BoardSnapshot], mode: str = "rules") -> str:
    """Answer a question; any failure turns into the generic fallback reply."""
    if snapshot is None:
        return FALLBACK_REPLY
    try:
        if mode == "llm":
            return await answer_with_llm(message, snapshot)
        return answer_with_rules(message, snapshot)
    except Exception as e:
        logger.error(f"Assistant failed on board {snapshot.board_id}: {e}", exc_info=True)
        return FALLBACK_REPLY


async def build_board_snapshot(db: AsyncSession, board_id: int) -> Optional[BoardSnapshot]:
    result = await db.execute(
        select(Board).where(Board.id == board_id).options(selectinload(Board.owner))
    )
    board = result.scalar_one_or_none()
    if not board:
        return None

    columns = (
        await db.execute(
            select(BoardColumn).where(BoardColumn.board_id == board_id).order_by(BoardColumn.position)
        )
    ).scalars().all()
    titles = {c.id: c.title for c in columns}

    tasks = []
    if titles:
        tasks = (
            await db.execute(
                select(Task)
                .where(Task.column_id.in_(list(titles)))
                .options(selectinload(Task.responsible))
                .order_by(Task.position)
            )
        ).scalars().all()

    comments = (
        await db.execute(
            select(BoardComment)
            .where(BoardComment.board_id == board_id)
            .order_by(BoardComment.created_at.desc(), BoardComment.id.desc())
            .limit(10)
        )
    ).scalars().all()

    messages = (
        await db.execute(
            select(BoardMessage)
            .where(BoardMessage.board_id == board_id)
            .order_by(BoardMessage.created_at.desc(), BoardMessage.id.desc())
            .limit(10)
        )
    ).scalars().all()

    return BoardSnapshot(
        board_id=board.id,
        title=board.title,
        description=board.description,
        owner_name=board.owner.name if board.owner else "User",
        created_at=board.created_at,
        is_public=bool(board.is_public),
        columns=[ColumnInfo(id=c.id, title=c.title) for c in columns],
        tasks=[
            TaskInfo(
                title=t.title,
                priority=getattr(t.priority, "value", t.priority),
                column_id=t.column_id,
                column_title=titles[t.column_id],
                due_date=t.due_date,
                responsible=t.responsible.name if t.responsible else None,
            )
            for t in tasks
        ],
        comments=[
            CommentInfo(author_name=c.author_name, content=c.content, created_at=c.created_at)
            for c in comments
        ],
        messages=[m.content for m in messages],
    )

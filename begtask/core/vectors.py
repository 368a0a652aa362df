import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np


def text_for_board(title: str, description: Optional[str]) -> str:
    return f"Board: {title}\nDescription: {description or ''}".strip()


def text_for_column(board_title: str, column_title: str) -> str:
    return f"Column: {column_title}\nBoard: {board_title}"


def text_for_task(board_title: str, column_title: str, task: Dict[str, Any]) -> str:
    lines = [f"Task: {task['title']}"]
    if task.get("description"):
        lines.append(f"Description: {task['description']}")
    lines.append(f"Priority: {task['priority']}")
    if task.get("due_date"):
        lines.append(f"Due: {task['due_date']}")
    lines.append(f"Column: {column_title}")
    lines.append(f"Board: {board_title}")
    return "\n".join(lines)


def board_documents(board: Dict[str, Any], columns: Sequence[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """(json content, embedding text) pairs for a board, each of its columns and each task."""
    board_id = board["id"]
    documents = [
        (
            json.dumps({"type": "board", "board_id": board_id, "title": board["title"],
                        "description": board.get("description")}),
            text_for_board(board["title"], board.get("description")),
        )
    ]
    for column in columns:
        documents.append(
            (
                json.dumps({"type": "column", "board_id": board_id, "column_title": column["title"]}),
                text_for_column(board["title"], column["title"]),
            )
        )
    for column in columns:
        for task in column.get("tasks", []):
            documents.append(
                (
                    json.dumps({
                        "type": "task",
                        "board_id": board_id,
                        "column_title": column["title"],
                        "title": task["title"],
                        "description": task.get("description"),
                        "priority": task["priority"],
                        "due_date": str(task["due_date"]) if task.get("due_date") else None,
                    }),
                    text_for_task(board["title"], column["title"], task),
                )
            )
    return documents


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; a zero vector scores 0 against anything."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank_by_similarity(
    query: Sequence[float], rows: Iterable[Tuple[int, str, Sequence[float]]], k: int = 5
) -> List[Dict[str, Any]]:
    """Linear scan over (id, content, embedding) rows, best k first."""
    scored = [
        {"id": row_id, "content": content, "score": cosine_similarity(query, embedding)}
        for row_id, content, embedding in rows
    ]
    scored.sort(key=lambda r: r["score"], reverse=True)
    return scored[:k]

import os
import sys
import json
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
EMBEDDING_MODEL = "text-embedding-3-small"

GENERIC_COLUMN_TITLES = {
    "todo", "doing", "done", "backlog", "pending", "waiting", "review", "testing",
}

PRIORITY_ALIASES = {
    "low": "low", "baixa": "low",
    "medium": "medium", "media": "medium", "média": "medium",
    "high": "high", "alta": "high",
}


@lru_cache(maxsize=1)
def get_client() -> AsyncOpenAI:
    return AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"), max_retries=0)


# --- Queue helpers --- #
async def redis_vectorize_board(redis, board_id: int):
    await redis.enqueue_job("vectorize_board", board_id)


# --- Embedding and text generation --- #
async def get_text_embedding(text: str) -> List[float]:
    """Generate a 1536-dim text embedding using OpenAI's small embedding model."""
    response = await get_client().embeddings.create(
        model=EMBEDDING_MODEL,
        input=text,
    )
    return response.data[0].embedding


async def generate_text(prompt: str, system: Optional[str] = None) -> str:
    """Single chat completion; no retries in front of it."""
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    completion = await get_client().chat.completions.create(
        model=CHAT_MODEL,
        messages=messages,
        temperature=0.3,
    )
    return str(completion.choices[0].message.content or "").strip()


# --- Board content generation --- #
def clean_json_from_text(text: str) -> str:
    """Strip markdown fences and keep the outermost JSON array when there is one."""
    cleaned = text.replace("```json", "").replace("```", "")
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned.strip()


def _first(item: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return default


def _coerce_task(task: Any) -> Dict[str, Any]:
    if not isinstance(task, dict):
        return {"title": str(task), "description": "", "priority": "medium"}
    priority = str(_first(task, "priority", "prioridade", default="medium")).lower()
    return {
        "title": str(_first(task, "title", "titulo", "name", default="Task")),
        "description": str(_first(task, "description", "descricao", "desc", default="")),
        "priority": PRIORITY_ALIASES.get(priority, "medium"),
    }


def coerce_to_expected_format(data: Any, content_type: str) -> List[Dict[str, Any]]:
    """Normalize whatever shape the model returned into a list of columns or tasks."""
    if not isinstance(data, list):
        if isinstance(data, dict):
            values = list(data.values())
            data = values[0] if values and isinstance(values[0], list) else [data]
        else:
            return []

    if content_type == "tasks":
        return [_coerce_task(item) for item in data]

    coerced = []
    for item in data:
        if not isinstance(item, dict):
            coerced.append({"title": str(item), "tasks": []})
            continue
        column = {"title": str(_first(item, "title", "titulo", "name", default="Column"))}
        if content_type == "columns_with_tasks":
            tasks = item.get("tasks", item.get("tarefas", []))
            if isinstance(tasks, str):
                tasks = [tasks]
            if not isinstance(tasks, list):
                tasks = []
            column["tasks"] = [_coerce_task(t) for t in tasks]
        coerced.append(column)
    return coerced


def post_process_columns(data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop empty and generic kanban column titles."""
    processed = []
    for item in data:
        title = str(item.get("title", "")).strip()
        if not title or title.lower() in GENERIC_COLUMN_TITLES:
            continue
        processed.append(item)
    return processed


def build_generation_prompt(prompt: str, content_type: str, count: Optional[int] = None) -> str:
    if content_type == "columns":
        amount = count or 3
        return (
            f'Context: "{prompt}". Generate EXACTLY {amount} domain-specific kanban columns. '
            "Do not include generic columns such as 'In progress' or 'Done'. "
            "Titles at most 30 characters. "
            'Format: [{"title": "string"}]. Return ONLY compact JSON.'
        )
    if content_type == "tasks":
        amount = count or 8
        return (
            f'Context: "{prompt}". Generate EXACTLY {amount} specific, actionable tasks. '
            "Title at most 40 characters, description at most 100 characters. "
            'Format: [{"title": "string", "description": "string", '
            '"priority": "low"|"medium"|"high"}]. Return ONLY compact JSON.'
        )
    amount = count or 3
    return (
        f'Context: "{prompt}". Generate EXACTLY {amount} domain-specific kanban columns, '
        "each with EXACTLY 4 practical tasks. Do not include generic columns. "
        'Format: [{"title": "string", "tasks": [{"title": "string", "description": "string", '
        '"priority": "low"|"medium"|"high"}]}]. Return ONLY the JSON, no explanations.'
    )


async def generate_board_content(
    prompt: str, content_type: str, count: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Ask the model for columns, tasks or columns with tasks and normalize the answer."""
    raw_output = await generate_text(build_generation_prompt(prompt, content_type, count))
    try:
        parsed = json.loads(clean_json_from_text(raw_output))
    except json.JSONDecodeError as e:
        logger.error(f"Model returned invalid JSON: {raw_output[:300]}")
        raise ValueError("Text generation did not return valid JSON") from e

    items = coerce_to_expected_format(parsed, content_type)
    if content_type != "tasks":
        items = post_process_columns(items)
    if not items:
        raise ValueError("Text generation returned no usable items")
    return items

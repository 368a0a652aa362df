import pytest

from begtask.core import services
from begtask.core.services import (
    clean_json_from_text,
    coerce_to_expected_format,
    generate_board_content,
    post_process_columns,
)


def test_clean_json_strips_fences_and_prose():
    raw = 'Sure! Here you go:\n```json\n[{"title": "Research"}]\n```\nAnything else?'
    assert clean_json_from_text(raw) == '[{"title": "Research"}]'


def test_coerce_tasks_accepts_portuguese_keys():
    data = [{"titulo": "Entrevistar", "descricao": "5 clientes", "prioridade": "alta"}, "Loose string"]
    assert coerce_to_expected_format(data, "tasks") == [
        {"title": "Entrevistar", "description": "5 clientes", "priority": "high"},
        {"title": "Loose string", "description": "", "priority": "medium"},
    ]


def test_coerce_unwraps_single_key_object():
    data = {"columns": [{"name": "Discovery", "tasks": "Call users"}]}
    assert coerce_to_expected_format(data, "columns_with_tasks") == [
        {"title": "Discovery", "tasks": [{"title": "Call users", "description": "", "priority": "medium"}]},
    ]


def test_generic_columns_are_dropped():
    columns = [{"title": "Done"}, {"title": " "}, {"title": "QA sign-off"}, {"title": "backlog"}]
    assert post_process_columns(columns) == [{"title": "QA sign-off"}]


async def test_generate_board_content(monkeypatch):
    async def fake_generate(prompt, system=None):
        assert "EXACTLY 2" in prompt
        return '```json\n[{"title": "Todo"}, {"title": "Prototype"}, {"title": "Pilot"}]\n```'

    monkeypatch.setattr(services, "generate_text", fake_generate)
    assert await generate_board_content("pilot program", "columns", 2) == [
        {"title": "Prototype"},
        {"title": "Pilot"},
    ]


@pytest.mark.parametrize("output", ["not json at all", "[]", '[{"title": "Done"}]'])
async def test_generate_board_content_rejects_unusable_output(monkeypatch, output):
    async def fake_generate(prompt, system=None):
        return output

    monkeypatch.setattr(services, "generate_text", fake_generate)
    with pytest.raises(ValueError):
        await generate_board_content("pilot program", "columns")

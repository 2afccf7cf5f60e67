import pytest

from interview_analyzer.models.json_extract import extract_json, find_json_span
from interview_analyzer.models.llm_client import LLMClient, LLMResponse, Message
from interview_analyzer.pipeline.errors import MalformedOutputError, StageError
from interview_analyzer.pipeline.schemas import ContentAnalysis, ContentType


def _client_returning(content: str, finish_reason: str = "stop", raw: dict | None = None) -> LLMClient:
    client = LLMClient()

    async def fake_chat(messages: list[Message], temperature: float = 0.7, max_tokens=None, **kwargs):
        return LLMResponse(content=content, finish_reason=finish_reason, model="test", raw_response=raw or {})

    # Monkeypatch instance method
    client.chat = fake_chat  # type: ignore[assignment]
    return client


@pytest.mark.asyncio
async def test_chat_with_json_repairs_single_quotes_and_trailing_commas() -> None:
    client = _client_returning("{'a': 1, 'b': 'x',}")

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"a": 1, "b": "x"}


@pytest.mark.asyncio
async def test_chat_with_json_repairs_unquoted_keys_and_fenced_json() -> None:
    client = _client_returning(
        """```json
        {a: 1, b: true, c: null,}
        ```"""
    )

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"a": 1, "b": True, "c": None}


@pytest.mark.asyncio
async def test_chat_with_json_escapes_raw_newlines_in_strings() -> None:
    client = _client_returning('{"summary": "line one\nline two"}')

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"summary": "line one\nline two"}


@pytest.mark.asyncio
async def test_chat_with_json_skips_surrounding_prose() -> None:
    client = _client_returning('Sure! Here is the result: {"score": 7, "notes": "ok {fine}"} Hope this helps.')

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"score": 7, "notes": "ok {fine}"}


@pytest.mark.asyncio
async def test_chat_with_json_wraps_top_level_arrays() -> None:
    client = _client_returning('[{"type": "email", "value": "a@b.co"}]')

    data = await client.chat_with_json(messages=[Message(role="user", content="hi")])
    assert data == {"items": [{"type": "email", "value": "a@b.co"}]}


@pytest.mark.asyncio
async def test_chat_with_json_rejects_output_without_json() -> None:
    client = _client_returning("I am sorry, I cannot help with that.")

    with pytest.raises(MalformedOutputError):
        await client.chat_with_json(messages=[Message(role="user", content="hi")])


@pytest.mark.asyncio
async def test_chat_with_json_reports_model_failure() -> None:
    client = _client_returning("", finish_reason="error", raw={"error": "Ollama timeout after 180s"})

    with pytest.raises(StageError, match="timeout"):
        await client.chat_with_json(messages=[Message(role="user", content="hi")])


@pytest.mark.asyncio
async def test_chat_structured_validates_against_model() -> None:
    client = _client_returning(
        '{"content_type": "Interview", "speaker_count": 2, "is_job_related": true, "topics": ["python"]}'
    )

    result = await client.chat_structured(
        [Message(role="user", content="classify")],
        ContentAnalysis,
        stage="content_analysis",
    )
    assert result.content_type == ContentType.INTERVIEW
    assert result.speaker_count == 2


@pytest.mark.asyncio
async def test_chat_structured_names_the_stage_on_invalid_payload() -> None:
    client = _client_returning('{"content_type": "interview"}')

    with pytest.raises(MalformedOutputError) as exc_info:
        await client.chat_structured(
            [Message(role="user", content="classify")],
            ContentAnalysis,
            stage="content_analysis",
        )
    assert exc_info.value.stage == "content_analysis"


def test_find_json_span_ignores_brackets_inside_strings() -> None:
    assert find_json_span('x {"a": "}"} y') == '{"a": "}"}'


def test_extract_json_accepts_python_literals() -> None:
    assert extract_json("{'ok': True, 'items': (1, 2), 'none': None}") == {
        "ok": True,
        "items": [1, 2],
        "none": None,
    }


def test_extract_json_rejects_empty_text() -> None:
    with pytest.raises(MalformedOutputError):
        extract_json("   ")

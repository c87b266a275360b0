# tests/test_document_analysis_agent.py
import json
from datetime import timedelta

import httpx
import pytest
from conftest import FIXED_NOW, FakeDocumentStore, RecordingTransport, gemini_body, make_gateway

import agents.document_analysis_agent as analysis_module
from agents.document_analysis_agent import (
    AGENT_GUIDANCE_FALLBACK_RULE,
    AUTHOR_CONTROL_FALLBACK_FOCUS,
    DocumentAnalysisAgent,
)
from core.errors import InvalidCredentialError
from core.extraction_cache import ExtractionCache

LIN_YI_REPLY = json.dumps(
    [
        {
            "name": "林逸",
            "role": "protagonist",
            "importance": 9,
            "relationships": [],
            "currentStatus": "active",
            "description": "...",
        }
    ],
    ensure_ascii=False,
)

CHARACTER_DOC = "林逸：主角，青云宗外门弟子，重要程度9。"


def _agent(store, transport, **kwargs) -> DocumentAnalysisAgent:
    return DocumentAnalysisAgent(
        store,
        make_gateway(transport),
        ExtractionCache(),
        provider="gemini",
        **kwargs,
    )


@pytest.mark.asyncio
async def test_extract_characters_single_record():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(gemini_body(LIN_YI_REPLY))
    agent = _agent(store, transport)

    characters = await agent.extract_characters()

    assert len(characters) == 1
    assert characters[0].name == "林逸"
    assert characters[0].importance == 9
    assert characters[0].role == "protagonist"
    assert characters[0].current_status == "active"


@pytest.mark.asyncio
async def test_unchanged_document_uses_single_provider_call():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(gemini_body(LIN_YI_REPLY))
    agent = _agent(store, transport)

    first = await agent.extract_characters()
    second = await agent.extract_characters()

    assert first == second
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_new_last_modified_forces_new_call():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(gemini_body(LIN_YI_REPLY), gemini_body("[]"))
    agent = _agent(store, transport)

    assert len(await agent.extract_characters()) == 1
    store.set(
        "character-relations", CHARACTER_DOC, last_modified=FIXED_NOW + timedelta(seconds=5)
    )
    assert await agent.extract_characters() == []
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_invalid_json_returns_empty_list_and_fallback():
    store = FakeDocumentStore(
        {
            "character-relations": CHARACTER_DOC,
            "author-control": "当前重点：突破",
        }
    )
    transport = RecordingTransport(
        gemini_body("I cannot produce JSON today."),
        gemini_body("{not json"),
    )
    agent = _agent(store, transport)

    assert await agent.extract_characters() == []
    control = await agent.analyze_author_control()
    assert control.is_fallback is True
    assert control.current_focus == AUTHOR_CONTROL_FALLBACK_FOCUS
    assert control.writing_guidelines == []


@pytest.mark.asyncio
async def test_parse_failure_logs_kind_and_truncated_response(monkeypatch):
    errors: list[str] = []
    monkeypatch.setattr(
        analysis_module.logger, "error", lambda msg, **_kw: errors.append(msg)
    )
    store = FakeDocumentStore({"plot-outline": "主线一"})
    transport = RecordingTransport(gemini_body("x" * 800))
    agent = _agent(store, transport, raw_log_chars=20)

    assert await agent.extract_plots() == []
    assert len(errors) == 1
    assert "plots" in errors[0]
    assert "x" * 20 + "..." in errors[0]
    assert "x" * 21 not in errors[0]


@pytest.mark.asyncio
async def test_parse_failure_is_not_cached():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(gemini_body("garbage"), gemini_body(LIN_YI_REPLY))
    agent = _agent(store, transport)

    assert await agent.extract_characters() == []
    assert len(await agent.extract_characters()) == 1
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_absent_and_empty_documents_make_no_calls():
    store = FakeDocumentStore({"plot-outline": "   \n"})
    transport = RecordingTransport()
    agent = _agent(store, transport)

    assert await agent.extract_characters() == []
    assert await agent.extract_plots() == []
    control = await agent.analyze_author_control()
    guidance = await agent.get_agent_guidance()

    assert control.is_fallback is True
    assert guidance.is_fallback is True
    assert guidance.execution_rules == [AGENT_GUIDANCE_FALLBACK_RULE]
    assert transport.requests == []
    assert agent.cache.status()["size"] == 0


@pytest.mark.asyncio
async def test_fenced_author_control_is_parsed():
    reply = (
        "```json\n"
        + json.dumps(
            {
                "currentFocus": "主角突破筑基",
                "writingGuidelines": ["节奏紧凑"],
                "restrictions": ["不要引入新反派"],
                "nextChapterGuidance": "描写突破过程",
            },
            ensure_ascii=False,
        )
        + "\n```"
    )
    store = FakeDocumentStore({"author-control": "控制台内容"})
    transport = RecordingTransport(gemini_body(reply))
    agent = _agent(store, transport)

    control = await agent.analyze_author_control()

    assert control.is_fallback is False
    assert control.current_focus == "主角突破筑基"
    assert control.restrictions == ["不要引入新反派"]


@pytest.mark.asyncio
async def test_agent_guidance_extraction():
    reply = json.dumps(
        {
            "executionRules": ["先读大纲"],
            "qualityStandards": ["人物一致"],
            "workflowSteps": ["生成大纲", "写作"],
        },
        ensure_ascii=False,
    )
    store = FakeDocumentStore({"agent-manual": "手册"})
    transport = RecordingTransport(gemini_body(reply))
    agent = _agent(store, transport)

    guidance = await agent.get_agent_guidance()

    assert guidance.workflow_steps == ["生成大纲", "写作"]
    assert guidance.is_fallback is False


@pytest.mark.asyncio
async def test_wrong_shape_for_single_object_kind_falls_back():
    store = FakeDocumentStore({"agent-manual": "手册"})
    transport = RecordingTransport(gemini_body('["not", "an", "object"]'))
    agent = _agent(store, transport)

    guidance = await agent.get_agent_guidance()

    assert guidance.is_fallback is True


@pytest.mark.asyncio
async def test_invalid_items_are_skipped_and_values_clamped():
    reply = json.dumps(
        [
            {"name": "林逸", "importance": 15, "relationships": [{"target": "张师兄", "strength": 0}]},
            "just a string",
            {"role": "minor"},
        ],
        ensure_ascii=False,
    )
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(gemini_body(reply))
    agent = _agent(store, transport)

    characters = await agent.extract_characters()

    assert [c.name for c in characters] == ["林逸"]
    assert characters[0].importance == 10
    assert characters[0].relationships[0].strength == 1


@pytest.mark.asyncio
async def test_prompt_truncates_long_documents():
    long_doc = "甲" * 50
    store = FakeDocumentStore({"character-relations": long_doc})
    transport = RecordingTransport(gemini_body("[]"))
    agent = _agent(store, transport, max_document_chars=10)

    await agent.extract_characters()

    text = transport.json_bodies()[0]["contents"][0]["parts"][0]["text"]
    assert "甲" * 10 in text
    assert "甲" * 11 not in text
    assert "文档已截断" in text


@pytest.mark.asyncio
async def test_gateway_errors_propagate():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(
        httpx.Response(401, json={"error": {"message": "bad key"}})
    )
    agent = _agent(store, transport)

    with pytest.raises(InvalidCredentialError):
        await agent.extract_characters()


@pytest.mark.asyncio
async def test_non_finite_numbers_fall_back_to_defaults():
    store = FakeDocumentStore(
        {"plot-outline": "主线一", "character-relations": CHARACTER_DOC}
    )
    transport = RecordingTransport(
        gemini_body('[{"name": "主线", "currentChapter": 1e999, "progress": NaN}]'),
        gemini_body('[{"name": "林逸", "importance": NaN}]'),
    )
    agent = _agent(store, transport)

    plots = await agent.extract_plots()
    characters = await agent.extract_characters()

    assert plots[0].current_chapter == 0
    assert plots[0].progress == 0
    assert characters[0].importance == 5


@pytest.mark.asyncio
async def test_loosely_typed_fields_keep_the_record():
    characters_reply = json.dumps(
        [
            {"name": "林逸", "level": 3, "age": 17.5, "currentStatus": None},
            {"name": "苏婉", "description": None, "role": None},
            {"description": "没有名字"},
        ],
        ensure_ascii=False,
    )
    plots_reply = json.dumps(
        [{"name": "主线", "keyEvents": [{"chapter": 12, "event": "入宗"}, None, 3]}],
        ensure_ascii=False,
    )
    store = FakeDocumentStore(
        {"character-relations": CHARACTER_DOC, "plot-outline": "主线一"}
    )
    transport = RecordingTransport(gemini_body(characters_reply), gemini_body(plots_reply))
    agent = _agent(store, transport)

    characters = await agent.extract_characters()
    plots = await agent.extract_plots()

    assert [c.name for c in characters] == ["林逸", "苏婉"]
    assert characters[0].level == "3"
    assert characters[0].age == "17.5"
    assert characters[0].current_status == ""
    assert characters[1].description == ""
    assert characters[1].role == "supporting"
    assert len(plots) == 1
    assert json.loads(plots[0].key_events[0]) == {"chapter": 12, "event": "入宗"}
    assert plots[0].key_events[1] == "3"


@pytest.mark.asyncio
async def test_truncated_reply_falls_back_and_counts_tokens():
    store = FakeDocumentStore({"character-relations": CHARACTER_DOC})
    transport = RecordingTransport(
        {
            "candidates": [{"finishReason": "MAX_TOKENS", "content": {"role": "model"}}],
            "usageMetadata": {"promptTokenCount": 900, "totalTokenCount": 4900},
        }
    )
    agent = _agent(store, transport)

    assert await agent.extract_characters() == []
    assert agent.gateway.get_usage_stats().total_tokens == 4900

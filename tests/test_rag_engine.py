"""Tests for the reply pipeline: query selection, context, prompt and fallbacks."""

from __future__ import annotations

import json

import pytest

from conftest import COMPLETION, PRACTICE, FakeGenerator, FakeStore
from koa.config.prompt_templates import CONTEXT_PROMPT_PREFIX, FALLBACK_REPLY, KOA_SYSTEM_PROMPT, NO_CONTEXT_NOTICE, OUTPUT_FORMAT_PROMPT
from koa.src.core.models import Message, ReplyStatus
from koa.src.core.rag_engine import MalformedCompletionError, NoUserMessageError, ReplyPipeline, format_context, latest_user_message, parse_completion

FALLBACK_WIRE = {"reply": FALLBACK_REPLY, "miniPractice": None}


def _pipeline(store: FakeStore | None = None, generator: FakeGenerator | None = None) -> ReplyPipeline:
    return ReplyPipeline(store or FakeStore(), generator or FakeGenerator(), namespace="default", top_k=5)


# -- Query selection ---------------------------------------------------------


def test_latest_user_message_is_last_user_turn(history: list[Message]) -> None:
    assert latest_user_message(history).content == "I'm tired and low on energy."


def test_latest_user_message_skips_trailing_assistant() -> None:
    messages = [
        Message(role="user", content="first"),
        Message(role="user", content="second"),
        Message(role="assistant", content="reply"),
        Message(role="system", content="note"),
    ]
    assert latest_user_message(messages).content == "second"


def test_latest_user_message_without_user_raises() -> None:
    with pytest.raises(NoUserMessageError):
        latest_user_message([Message(role="assistant", content="hi")])


def test_empty_last_user_message_raises() -> None:
    messages = [Message(role="user", content="earlier"), Message(role="user", content="")]
    with pytest.raises(NoUserMessageError):
        latest_user_message(messages)


async def test_search_uses_last_user_message(history: list[Message]) -> None:
    store = FakeStore()
    await _pipeline(store=store).generate_reply(history)
    assert store.calls == [("I'm tired and low on energy.", 5, "default")]


async def test_no_user_message_never_calls_upstream() -> None:
    store = FakeStore()
    generator = FakeGenerator()
    with pytest.raises(NoUserMessageError):
        await _pipeline(store, generator).generate_reply([Message(role="assistant", content="hello")])
    assert store.calls == []
    assert generator.calls == []


async def test_empty_history_is_a_client_error() -> None:
    with pytest.raises(NoUserMessageError, match="No user message provided."):
        await _pipeline().generate_reply([])


# -- Context -----------------------------------------------------------------


def test_format_context_joins_fields_and_records_in_order() -> None:
    records = [
        {"text": "Box breathing.", "pre_context": "Mood: stressed.", "post_context": ""},
        {"text": "Long exhale.", "score": 0.3},
    ]
    assert format_context(records) == "Box breathing.\nMood: stressed.\n\n---\n\nLong exhale."


def test_format_context_drops_records_without_text() -> None:
    records = [{"text": ""}, {"chunk": 3}, {"text": "Hand on heart."}]
    assert format_context(records) == "Hand on heart."


def test_format_context_empty_uses_notice() -> None:
    assert format_context([]) == NO_CONTEXT_NOTICE


async def test_empty_store_passes_notice_verbatim(history: list[Message]) -> None:
    generator = FakeGenerator()
    await _pipeline(FakeStore(records=[]), generator).generate_reply(history)
    context_turn = generator.calls[0][1]
    assert context_turn.role == "system"
    assert context_turn.content == CONTEXT_PROMPT_PREFIX + NO_CONTEXT_NOTICE
    assert context_turn.content.removeprefix(CONTEXT_PROMPT_PREFIX) == NO_CONTEXT_NOTICE


# -- Prompt assembly ---------------------------------------------------------


async def test_turns_are_persona_context_history_format(history: list[Message]) -> None:
    store = FakeStore(records=[{"text": "Wake-up stretch."}])
    generator = FakeGenerator()
    await _pipeline(store, generator).generate_reply(history)

    turns = generator.calls[0]
    assert turns[0] == Message(role="system", content=KOA_SYSTEM_PROMPT)
    assert turns[1] == Message(role="system", content=CONTEXT_PROMPT_PREFIX + "Wake-up stretch.")
    assert turns[2:-1] == history
    assert turns[-1] == Message(role="system", content=OUTPUT_FORMAT_PROMPT)


# -- Parsing -----------------------------------------------------------------


def test_parse_completion_reads_camel_case() -> None:
    payload = parse_completion(COMPLETION)
    assert payload.mini_practice is not None
    assert payload.mini_practice.energy_level == "low"
    assert payload.to_wire()["miniPractice"]["steps"] == PRACTICE["steps"]


def test_parse_completion_allows_null_practice() -> None:
    payload = parse_completion('{"reply": "Hi there", "miniPractice": null}')
    assert payload.mini_practice is None


@pytest.mark.parametrize(
    "text",
    [
        "Sure! Here's a practice: breathe.",
        "[1, 2, 3]",
        '{"miniPractice": null}',
        json.dumps({"reply": 42, "miniPractice": PRACTICE}),
    ],
)
def test_parse_completion_rejects_malformed(text: str) -> None:
    with pytest.raises(MalformedCompletionError):
        parse_completion(text)


@pytest.mark.parametrize(
    "practice",
    [
        {**PRACTICE, "energyLevel": "Low"},
        {**PRACTICE, "environment": "gym"},
        {**PRACTICE, "steps": []},
        "just breathe",
    ],
)
def test_parse_completion_drops_invalid_practice_keeps_reply(practice: object) -> None:
    payload = parse_completion(json.dumps({"reply": "That sounds heavy. Try this.", "miniPractice": practice}))
    assert payload.reply == "That sounds heavy. Try this."
    assert payload.mini_practice is None


async def test_invalid_practice_is_still_ok(history: list[Message]) -> None:
    completion = json.dumps({"reply": "That sounds heavy. Try this.", "miniPractice": {**PRACTICE, "energyLevel": "Low"}})
    outcome = await _pipeline(generator=FakeGenerator(completion=completion)).generate_reply(history)
    assert outcome.status is ReplyStatus.OK
    assert outcome.payload.to_wire() == {"reply": "That sounds heavy. Try this.", "miniPractice": None}


# -- Outcomes ----------------------------------------------------------------


async def test_success_returns_ok_payload(history: list[Message]) -> None:
    outcome = await _pipeline().generate_reply(history)
    assert outcome.status is ReplyStatus.OK
    assert not outcome.is_fallback
    assert outcome.payload.reply == "That sounds draining. Let's try something gentle."


async def test_non_json_completion_falls_back_locally(history: list[Message]) -> None:
    outcome = await _pipeline(generator=FakeGenerator(completion="not json at all")).generate_reply(history)
    assert outcome.status is ReplyStatus.MALFORMED_OUTPUT
    assert outcome.payload.to_wire() == FALLBACK_WIRE
    assert outcome.reason


async def test_store_failure_is_upstream_unavailable(history: list[Message]) -> None:
    generator = FakeGenerator()
    outcome = await _pipeline(FakeStore(error=ConnectionError("store down")), generator).generate_reply(history)
    assert outcome.status is ReplyStatus.UPSTREAM_UNAVAILABLE
    assert outcome.payload.to_wire() == FALLBACK_WIRE
    assert "search" in outcome.reason
    assert generator.calls == []


async def test_generation_failure_is_upstream_unavailable(history: list[Message]) -> None:
    outcome = await _pipeline(generator=FakeGenerator(error=RuntimeError("quota"))).generate_reply(history)
    assert outcome.status is ReplyStatus.UPSTREAM_UNAVAILABLE
    assert outcome.payload.to_wire() == FALLBACK_WIRE
    assert "generation" in outcome.reason


async def test_same_history_twice_gives_identical_output(history: list[Message]) -> None:
    pipeline = _pipeline(FakeStore(records=[{"text": "Box breathing."}]))
    first = await pipeline.generate_reply(history)
    second = await pipeline.generate_reply(history)
    assert first == second
    assert first.payload.to_wire() == second.payload.to_wire()

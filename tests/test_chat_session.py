"""Tests for the client-side ChatSession: optimistic turns, errors, loading flag."""

from __future__ import annotations

import asyncio
import json

import httpx

from conftest import PRACTICE, FakeGenerator, FakeStore
from koa.config.prompt_templates import CLIENT_ERROR_REPLY, CLIENT_PLACEHOLDER_REPLY, GREETING
from koa.src.client.chat_session import ChatSession, read_assistant_turn
from koa.src.core.rag_engine import ReplyPipeline
from koa.src.main import create_app

API_URL = "http://koa.test/api/chat"


def _session(handler) -> tuple[ChatSession, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatSession(http, API_URL), http


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"reply": "Let's stretch.", "miniPractice": PRACTICE})


# -- Initial state -----------------------------------------------------------


def test_session_starts_with_greeting() -> None:
    session, _ = _session(_ok)
    assert [(t.role, t.content) for t in session.history] == [("assistant", GREETING)]
    assert session.is_loading is False


# -- Sending -----------------------------------------------------------------


async def test_send_posts_full_history_and_appends_reply() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return _ok(request)

    session, http = _session(handler)
    async with http:
        turn = await session.send("  I'm tired.  ")

    assert seen == [{"messages": [{"role": "assistant", "content": GREETING}, {"role": "user", "content": "I'm tired."}]}]
    assert [t.role for t in session.history] == ["assistant", "user", "assistant"]
    assert turn is session.history[-1]
    assert turn.content == "Let's stretch."
    assert turn.mini_practice is not None and turn.mini_practice.title == PRACTICE["title"]
    assert session.is_loading is False


async def test_user_turn_is_appended_before_response() -> None:
    session: ChatSession

    def handler(request: httpx.Request) -> httpx.Response:
        assert session.history[-1].role == "user"
        assert session.is_loading is True
        return _ok(request)

    session, http = _session(handler)
    async with http:
        await session.send("hello")


async def test_empty_input_is_ignored() -> None:
    calls: list[httpx.Request] = []
    session, http = _session(lambda request: calls.append(request) or _ok(request))
    async with http:
        assert await session.send("   ") is None
    assert calls == []
    assert len(session.history) == 1


async def test_send_while_loading_is_ignored() -> None:
    release = asyncio.Event()

    async def slow(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return _ok(request)

    session, http = _session(slow)
    async with http:
        first = asyncio.create_task(session.send("first"))
        await asyncio.sleep(0)
        while not session.is_loading:
            await asyncio.sleep(0)
        assert await session.send("second") is None
        release.set()
        await first

    assert [t.content for t in session.history if t.role == "user"] == ["first"]


# -- Failures ----------------------------------------------------------------


async def test_http_error_status_appends_error_turn() -> None:
    session, http = _session(lambda request: httpx.Response(500, json={"reply": "sorry", "miniPractice": None}))
    async with http:
        turn = await session.send("hi")
    assert turn.content == CLIENT_ERROR_REPLY
    assert turn.mini_practice is None
    assert [t.role for t in session.history] == ["assistant", "user", "assistant"]
    assert session.is_loading is False


async def test_network_error_appends_error_turn() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    session, http = _session(handler)
    async with http:
        turn = await session.send("hi")
    assert turn.content == CLIENT_ERROR_REPLY
    assert session.is_loading is False


async def test_closed_client_appends_error_turn() -> None:
    session, http = _session(_ok)
    await http.aclose()

    turn = await session.send("hi")
    assert turn is not None and turn.content == CLIENT_ERROR_REPLY
    assert [t.role for t in session.history] == ["assistant", "user", "assistant"]
    assert session.is_loading is False


async def test_undecodable_body_appends_error_turn() -> None:
    session, http = _session(lambda request: httpx.Response(200, content=b"<html>"))
    async with http:
        turn = await session.send("hi")
    assert turn.content == CLIENT_ERROR_REPLY
    assert session.is_loading is False


# -- Response reading --------------------------------------------------------


def test_read_prefers_reply_then_legacy_keys() -> None:
    assert read_assistant_turn({"reply": "a", "message": "b"})[0] == "a"
    assert read_assistant_turn({"message": "b", "content": "c"})[0] == "b"
    assert read_assistant_turn({"content": "c"})[0] == "c"
    assert read_assistant_turn({})[0] == CLIENT_PLACEHOLDER_REPLY


def test_read_drops_invalid_practice() -> None:
    text, practice = read_assistant_turn({"reply": "ok", "miniPractice": {"title": "x"}})
    assert text == "ok"
    assert practice is None


# -- End to end --------------------------------------------------------------


async def test_end_to_end_through_the_api() -> None:
    pipeline = ReplyPipeline(FakeStore(records=[{"text": "Wake-up stretch."}]), FakeGenerator(), namespace="default")
    transport = httpx.ASGITransport(app=create_app(pipeline=pipeline))

    async with httpx.AsyncClient(transport=transport, base_url="http://koa.test") as http:
        session = ChatSession(http, "http://koa.test/api/chat")
        before = len(session.history)
        turn = await session.send("I'm tired and low on energy.")

    added = session.history[before:]
    assert [t.role for t in added] == ["user", "assistant"]
    assert added[0].content == "I'm tired and low on energy."
    assert turn.mini_practice is not None
    assert turn.mini_practice.energy_level in {"low", "medium", "high"}
    assert turn.mini_practice.steps and all(isinstance(step, str) for step in turn.mini_practice.steps)

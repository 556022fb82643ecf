"""
Koa - Chat Session (client side)
=================================
In-memory conversation state for one client session, talking to
``POST /api/chat`` through an injected ``httpx.AsyncClient``.

Send contract:
    1. Trim input; ignore empty input or a send while one is in flight.
    2. Append the user turn immediately (optimistic).
    3. Set ``is_loading`` and post the full history.
    4. Append exactly one assistant turn: the reply on success, the
       fixed error text on any failure.
    5. Clear ``is_loading`` no matter what happened.

History is never persisted; a new session starts from the greeting.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from koa.config.prompt_templates import CLIENT_ERROR_REPLY, CLIENT_PLACEHOLDER_REPLY, GREETING
from koa.src.core.models import MiniPractice, Role
from koa.src.utils.logger import get_logger

logger = get_logger(__name__)

# ``reply`` is what the backend sends; the rest are older field names.
_REPLY_KEYS: tuple[str, ...] = ("reply", "message", "content")


@dataclass(frozen=True)
class ChatTurn:
    """One rendered chat bubble."""

    id: int
    role: Role
    content: str
    mini_practice: MiniPractice | None = None
    with_activity_card: bool = False

    def to_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def read_assistant_turn(data: object) -> tuple[str, MiniPractice | None]:
    """Extract reply text and practice from a response body."""
    if not isinstance(data, dict):
        return CLIENT_PLACEHOLDER_REPLY, None

    text = next((data[key] for key in _REPLY_KEYS if isinstance(data.get(key), str) and data[key]), CLIENT_PLACEHOLDER_REPLY)

    practice = None
    raw_practice = data.get("miniPractice")
    if raw_practice is not None:
        try:
            practice = MiniPractice.model_validate(raw_practice)
        except ValidationError:
            logger.warning("Dropping invalid miniPractice from response.")

    return text, practice


class ChatSession:
    """
    One page-session worth of conversation.

    Parameters
    ----------
    http
        Client used for requests; its lifecycle belongs to the caller.
    api_url
        Full URL of the chat endpoint.
    """

    def __init__(self, http: httpx.AsyncClient, api_url: str) -> None:
        self._http = http
        self._api_url = api_url
        self._ids = itertools.count(1)
        self._history: list[ChatTurn] = [ChatTurn(id=next(self._ids), role="assistant", content=GREETING, with_activity_card=True)]
        self.is_loading = False

    @property
    def history(self) -> tuple[ChatTurn, ...]:
        return tuple(self._history)


    async def send(self, text: str) -> ChatTurn | None:
        """
        Submit *text* and append the assistant's answer.

        Returns the appended assistant turn, or ``None`` when the input
        was empty or a request was already in flight.
        """
        trimmed = text.strip()
        if not trimmed or self.is_loading:
            return None

        self._append(ChatTurn(id=next(self._ids), role="user", content=trimmed))
        self.is_loading = True

        try:
            payload = {"messages": [turn.to_message() for turn in self._history]}
            response = await self._http.post(self._api_url, json=payload)
            response.raise_for_status()
            reply, practice = read_assistant_turn(response.json())
            turn = ChatTurn(id=next(self._ids), role="assistant", content=reply, mini_practice=practice, with_activity_card=True)
        except Exception as exc:
            # Any failure still ends the exchange with an assistant turn
            logger.error("Chat request failed: %s: %s", type(exc).__name__, exc)
            turn = ChatTurn(id=next(self._ids), role="assistant", content=CLIENT_ERROR_REPLY)
        finally:
            self.is_loading = False

        self._append(turn)
        return turn


    def _append(self, turn: ChatTurn) -> None:
        self._history.append(turn)

"""
Koa - Reply Pipeline
=====================
Retrieval-augmented reply generation for one chat request.

``ReplyPipeline`` flow:
    1. Pick the latest user message (no user message → ``NoUserMessageError``)
    2. Retrieve → top-K search in the configured namespace
    3. Build context → flatten records, or the no-context notice
    4. Build turns → persona + context + full history + output format
    5. Generate → one JSON-constrained completion
    6. Parse → ``ReplyPayload``, or the fallback on malformed output
    7. Return a ``ReplyOutcome``

Upstream failures (store or generation service raising) never escape:
they become ``ReplyOutcome.unavailable``.  Malformed completions become
``ReplyOutcome.malformed``.  Both carry the same fallback payload.

The pipeline holds no request-scoped state; one instance serves every
request.  Collaborators are injected, so tests pass stand-ins for the
store and the generation service.

Usage:
    from koa.src.core.rag_engine import ReplyPipeline
    pipeline = ReplyPipeline(store, generator, namespace="default")
    outcome = await pipeline.generate_reply(messages)
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from koa.config.prompt_templates import CONTEXT_PROMPT_PREFIX, FIELD_SEPARATOR, KOA_SYSTEM_PROMPT, NO_CONTEXT_NOTICE, NO_USER_MESSAGE_ERROR, OUTPUT_FORMAT_PROMPT, SNIPPET_SEPARATOR
from koa.src.core.llm import GenerationService
from koa.src.core.models import Message, ReplyOutcome, ReplyPayload
from koa.src.utils.logger import get_logger
from koa.src.utils.text_utils import join_text_fields

logger = get_logger(__name__)

# ── Type aliases ───────────────────────────────────────────────────────
SearchResult = dict[str, str | int | float | list[float]]

DEFAULT_TOP_K = 5


class NoUserMessageError(ValueError):
    """The conversation contains no ``user`` turn to answer."""

    def __init__(self, message: str = NO_USER_MESSAGE_ERROR) -> None:
        super().__init__(message)


class MalformedCompletionError(ValueError):
    """The completion is not a JSON object matching ``ReplyPayload``."""


@runtime_checkable
class KnowledgeStore(Protocol):
    """Anything that can run a namespaced top-K search by raw text."""

    def search(self, query_text: str, limit: int = 5, namespace: str | None = None) -> list[SearchResult]: ...


# ══════════════════════════════════════════════════════════════════════
#  PURE HELPERS
# ══════════════════════════════════════════════════════════════════════


def latest_user_message(messages: Sequence[Message]) -> Message:
    """
    Return the chronologically last ``user`` message.

    An empty last user turn counts as no user message at all.
    """
    for message in reversed(messages):
        if message.role == "user":
            if not message.content:
                break
            return message
    raise NoUserMessageError()


def format_context(records: Sequence[SearchResult]) -> str:
    """
    Flatten retrieved records into one context block.

    Each record's string fields are joined by newlines, records keep the
    store's ranking and are separated by ``---`` rules.  Records with no
    text are dropped; if nothing is left the no-context notice is used.
    """
    blocks = [join_text_fields(record, FIELD_SEPARATOR) for record in records]
    context = SNIPPET_SEPARATOR.join(block for block in blocks if block)
    return context or NO_CONTEXT_NOTICE


def build_turns(messages: Sequence[Message], context: str) -> list[Message]:
    """Assemble the generation request: persona, context, history, format."""
    return [
        Message(role="system", content=KOA_SYSTEM_PROMPT),
        Message(role="system", content=CONTEXT_PROMPT_PREFIX + context),
        *messages,
        Message(role="system", content=OUTPUT_FORMAT_PROMPT),
    ]


def parse_completion(text: str) -> ReplyPayload:
    """
    Parse a completion into a ``ReplyPayload``.

    A usable ``reply`` is kept even when ``miniPractice`` fails
    validation; the practice is dropped instead.

    Raises
    ------
    MalformedCompletionError
        If *text* is not JSON, not an object, or has no string ``reply``.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedCompletionError(f"not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedCompletionError(f"expected a JSON object, got {type(data).__name__}")

    reply = data.get("reply")
    if not isinstance(reply, str):
        raise MalformedCompletionError("missing or non-string 'reply'")

    try:
        return ReplyPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("[REPLY] Dropping invalid miniPractice (%d error(s)); keeping the reply.", exc.error_count())
        return ReplyPayload(reply=reply, mini_practice=None)


# ══════════════════════════════════════════════════════════════════════
#  REPLY PIPELINE
# ══════════════════════════════════════════════════════════════════════


class ReplyPipeline:
    """
    Orchestrates retrieve → prompt → generate → parse for one request.

    Parameters
    ----------
    store
        A ``KnowledgeStore`` (normally ``KoaKnowledgeStore``).
    generator
        A ``GenerationService`` (normally ``ChatModelGenerator``).
    namespace
        Knowledge-store namespace to search.
    top_k
        Number of snippets to retrieve.
    """

    __slots__ = ("_store", "_generator", "_namespace", "_top_k")

    def __init__(self, store: KnowledgeStore, generator: GenerationService, namespace: str = "default", top_k: int = DEFAULT_TOP_K) -> None:
        self._store = store
        self._generator = generator
        self._namespace = namespace
        self._top_k = top_k


    async def generate_reply(self, messages: Sequence[Message]) -> ReplyOutcome:
        """
        Answer the latest user message in *messages*.

        Raises
        ------
        NoUserMessageError
            If *messages* has no ``user`` turn.  Nothing upstream is called.
        """
        query = latest_user_message(messages).content
        t_start = time.perf_counter()

        # ── Retrieve ──────────────────────────────────────────────────
        try:
            records = await asyncio.to_thread(self._store.search, query, self._top_k, self._namespace)
        except Exception as exc:
            logger.exception("[REPLY] Knowledge store search failed.")
            return ReplyOutcome.unavailable(f"search failed: {type(exc).__name__}")
        search_ms = (time.perf_counter() - t_start) * 1000

        context = format_context(records)
        if context == NO_CONTEXT_NOTICE:
            logger.warning("[REPLY] No snippets retrieved; using the no-context notice.")
        logger.info("[REPLY] Retrieved %d record(s) in %.1fms (%d context chars).", len(records), search_ms, len(context))

        # ── Generate ──────────────────────────────────────────────────
        turns = build_turns(messages, context)
        t_llm = time.perf_counter()
        try:
            completion = await self._generator.generate(turns)
        except Exception as exc:
            logger.exception("[REPLY] Generation call failed.")
            return ReplyOutcome.unavailable(f"generation failed: {type(exc).__name__}")
        llm_ms = (time.perf_counter() - t_llm) * 1000
        logger.info("[REPLY] Completion received in %.1fms (%d chars).", llm_ms, len(completion))

        # ── Parse ─────────────────────────────────────────────────────
        try:
            payload = parse_completion(completion)
        except MalformedCompletionError as exc:
            logger.warning("[REPLY] Malformed completion, using fallback: %s", exc)
            return ReplyOutcome.malformed(str(exc))

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[REPLY] Pipeline total: %.1fms (search=%.1f, llm=%.1f)", total_ms, search_ms, llm_ms)
        return ReplyOutcome.ok(payload)


    def __repr__(self) -> str:
        return f"ReplyPipeline(namespace='{self._namespace}', top_k={self._top_k})"

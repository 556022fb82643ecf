"""
Koa - Data Model
=================
Pydantic models shared by the reply pipeline, the HTTP API and the
chat client.

Wire format is camelCase (``miniPractice``, ``energyLevel`` …); Python
attributes are snake_case.  Always serialise with ``by_alias=True``.

``ReplyOutcome`` is the pipeline's explicit result type: a successful
payload, or the fixed fallback payload plus the reason it was used.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from koa.config.prompt_templates import FALLBACK_REPLY

# ── Enumerations ───────────────────────────────────────────────────────
Role = Literal["system", "user", "assistant"]
EnergyLevel = Literal["low", "medium", "high"]
Environment = Literal["at_desk", "commute", "bedtime", "flexible"]

MOOD_TAGS: tuple[str, ...] = ("stressed", "anxious", "tired", "overwhelmed", "sad", "numb")


class Message(BaseModel):
    """One chronological conversation turn.  Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    messages: list[Message] = Field(default_factory=list)


class MiniPractice(BaseModel):
    """A 1–2 minute practice suggested alongside a reply."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    mood_tags: list[str] = Field(default_factory=list)
    energy_level: EnergyLevel
    environment: Environment
    duration: str
    steps: list[str] = Field(min_length=1)
    note: str | None = None

    @field_validator("mood_tags", mode="before")
    @classmethod
    def _known_tags_only(cls, v: object) -> list[str]:
        """Keep known mood labels once each, in first-seen order."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set)):
            raise ValueError("moodTags must be a list of labels")
        seen: list[str] = []
        for tag in v:
            label = str(tag).strip().lower()
            if label in MOOD_TAGS and label not in seen:
                seen.append(label)
        return seen


class ReplyPayload(BaseModel):
    """What the backend returns to the client: ``{reply, miniPractice}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reply: str
    mini_practice: MiniPractice | None = None

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, mode="json")


def fallback_payload() -> ReplyPayload:
    """The fixed apology shown whenever no usable reply exists."""
    return ReplyPayload(reply=FALLBACK_REPLY, mini_practice=None)


# ── Pipeline result type ───────────────────────────────────────────────

class ReplyStatus(str, Enum):
    OK = "ok"
    MALFORMED_OUTPUT = "malformed_output"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


@dataclass(frozen=True)
class ReplyOutcome:
    """
    Result of one pipeline run.

    ``OK`` carries the generated payload.  ``MALFORMED_OUTPUT`` and
    ``UPSTREAM_UNAVAILABLE`` carry ``fallback_payload()`` and a short
    ``reason`` for logs; both look the same to the end user.
    """

    status: ReplyStatus
    payload: ReplyPayload
    reason: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.status is not ReplyStatus.OK

    @classmethod
    def ok(cls, payload: ReplyPayload) -> ReplyOutcome:
        return cls(ReplyStatus.OK, payload)

    @classmethod
    def malformed(cls, reason: str) -> ReplyOutcome:
        return cls(ReplyStatus.MALFORMED_OUTPUT, fallback_payload(), reason)

    @classmethod
    def unavailable(cls, reason: str) -> ReplyOutcome:
        return cls(ReplyStatus.UPSTREAM_UNAVAILABLE, fallback_payload(), reason)

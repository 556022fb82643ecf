"""Shared fixtures and stand-ins for the store and generation service."""

from __future__ import annotations

import json
import os

# Settings are loaded at import time and need a key.
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("ENV", "dev")

import pytest

from koa.src.core.models import Message

PRACTICE = {
    "title": "Wake-up stretch",
    "moodTags": ["tired"],
    "energyLevel": "low",
    "environment": "flexible",
    "duration": "1–2 mins",
    "steps": ["Sit tall.", "Reach both arms overhead.", "Roll your shoulders back."],
    "note": "Small movements count.",
}

COMPLETION = json.dumps({"reply": "That sounds draining. Let's try something gentle.", "miniPractice": PRACTICE})


class FakeStore:
    """Records every search and returns canned records (or raises)."""

    def __init__(self, records: list[dict] | None = None, error: Exception | None = None) -> None:
        self.records = records if records is not None else []
        self.error = error
        self.calls: list[tuple[str, int, str | None]] = []

    def search(self, query_text: str, limit: int = 5, namespace: str | None = None) -> list[dict]:
        self.calls.append((query_text, limit, namespace))
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeGenerator:
    """Returns a fixed completion (or raises) and keeps the turns it saw."""

    def __init__(self, completion: str = COMPLETION, error: Exception | None = None) -> None:
        self.completion = completion
        self.error = error
        self.calls: list[list[Message]] = []

    async def generate(self, turns: list[Message]) -> str:
        self.calls.append(list(turns))
        if self.error is not None:
            raise self.error
        return self.completion


@pytest.fixture
def history() -> list[Message]:
    return [
        Message(role="assistant", content="Hey, I'm Koa. How are you feeling?"),
        Message(role="user", content="I'm stressed about exams."),
        Message(role="assistant", content="Let's try box breathing."),
        Message(role="user", content="I'm tired and low on energy."),
    ]

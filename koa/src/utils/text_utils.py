"""
Koa - Text Utilities
=====================
Helper functions for text cleaning, chunking, and flattening of
knowledge-store records.

These utilities are consumed by the ``IngestionPipeline`` and the
``ReplyPipeline`` and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping


# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

# Paragraph → line → sentence → word
_SPLIT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise raw snippet text for embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def split_text(text: str, max_size: int) -> list[str]:
    """
    Split *text* into chunks of at most *max_size* characters.

    Tries paragraph, line, sentence and word boundaries in that order
    and only cuts inside a word when nothing else fits.
    """
    text = text.strip()
    if not text:
        return []
    return _recursive_split(text, list(_SPLIT_SEPARATORS), max_size)


def join_text_fields(record: Mapping[str, object], separator: str = "\n") -> str:
    """
    Join every non-empty string value of *record*, in field order.

    Non-string values (numbers, vectors, ``None``) are ignored.
    """
    parts = [value for value in record.values() if isinstance(value, str) and value.strip()]
    return separator.join(parts)


# ── Internals ──────────────────────────────────────────────────────────

def _recursive_split(text: str, separators: list[str], max_size: int) -> list[str]:
    """Recursively split *text* using the first applicable separator."""
    if len(text) <= max_size:
        return [text]

    if not separators:
        return _hard_split(text, max_size)

    sep = separators[0]
    remaining = separators[1:]
    parts = [p.strip() for p in text.split(sep) if p.strip()]

    if len(parts) <= 1:
        return _recursive_split(text, remaining, max_size)

    chunks: list[str] = []
    current = ""

    for part in parts:
        candidate = (current + sep + part).strip() if current else part
        if len(candidate) <= max_size:
            current = candidate
        else:
            if current:
                chunks.append(current)
            if len(part) > max_size:
                chunks.extend(_recursive_split(part, remaining, max_size))
                current = ""
            else:
                current = part

    if current:
        chunks.append(current)
    return chunks


def _hard_split(text: str, max_size: int) -> list[str]:
    """Character-level split at nearest whitespace."""
    chunks: list[str] = []
    start = 0
    length = len(text)

    while start < length:
        end = start + max_size
        if end >= length:
            chunks.append(text[start:].strip())
            break
        split_at = text.rfind(" ", start, end)
        if split_at <= start:
            split_at = end
        chunks.append(text[start:split_at].strip())
        start = split_at + 1 if text[split_at:split_at + 1] == " " else split_at

    return [c for c in chunks if c]

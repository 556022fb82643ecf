"""Tests for the snippet ingestion pipeline (store replaced by a recorder)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from koa.src.core.ingestor import IngestionPipeline, SnippetFormatError


class RecordingStore:
    namespace = "default"

    def __init__(self) -> None:
        self.batches: list[tuple[list[str], list[dict], str | None]] = []

    def add_documents(self, texts: list[str], metadatas: list[dict], namespace: str | None = None) -> int:
        self.batches.append((texts, metadatas, namespace))
        return len(texts)


def _pipeline(tmp_path: Path, store: RecordingStore, **kwargs) -> IngestionPipeline:
    return IngestionPipeline(store, source_dir=tmp_path / "knowledge", max_workers=2, chunk_size=60, cache_path=tmp_path / "cache.json", **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def knowledge(tmp_path: Path) -> Path:
    source = tmp_path / "knowledge"
    source.mkdir()
    (source / "practices.json").write_text(
        json.dumps([
            {"text": "Box breathing.", "pre_context": "Mood: stressed.", "post_context": "Before exams."},
            {"text": "   "},
            {"text": "Long exhale."},
        ]),
        encoding="utf-8",
    )
    (source / "focus.md").write_text("Desk reset. Close the extra tabs.\n\nSingle-point gaze for ten breaths.", encoding="utf-8")
    (source / "ignored.csv").write_text("a,b", encoding="utf-8")
    return source


def test_parse_snippets_skips_blank_text() -> None:
    texts, metadatas = IngestionPipeline.parse_snippets(json.dumps([{"text": "A"}, {"pre_context": "no text"}, {"text": "B", "post_context": "after"}]), "p.json")
    assert texts == ["A", "B"]
    assert metadatas[1] == {"pre_context": "", "post_context": "after", "source_file": "p.json", "chunk_index": 2}


@pytest.mark.parametrize("raw", ["{not json", '{"text": "one object"}'])
def test_parse_snippets_rejects_bad_files(raw: str) -> None:
    with pytest.raises(SnippetFormatError):
        IngestionPipeline.parse_snippets(raw, "bad.json")


def test_chunk_text_numbers_chunks() -> None:
    texts, metadatas = IngestionPipeline.chunk_text("First paragraph.\n\nSecond paragraph.", "notes.md", 20)
    assert texts == ["First paragraph.", "Second paragraph."]
    assert [m["chunk_index"] for m in metadatas] == [0, 1]


def test_run_ingests_supported_files(tmp_path: Path, knowledge: Path) -> None:
    store = RecordingStore()
    summary = _pipeline(tmp_path, store, namespace="campus").run()

    assert summary["total_files"] == 2
    assert summary["files_processed"] == 2
    assert summary["total_chunks"] == 4
    assert {namespace for _, _, namespace in store.batches} == {"campus"}


def test_unchanged_files_are_skipped_on_rerun(tmp_path: Path, knowledge: Path) -> None:
    _pipeline(tmp_path, RecordingStore()).run()

    store = RecordingStore()
    summary = _pipeline(tmp_path, store).run()
    assert summary["files_skipped"] == 2
    assert store.batches == []


def test_missing_source_dir(tmp_path: Path) -> None:
    summary = _pipeline(tmp_path, RecordingStore()).run()
    assert summary["total_files"] == 0

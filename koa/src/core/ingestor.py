"""
Koa - IngestionPipeline
========================
Reads practice snippets from ``KNOWLEDGE_DIR``, cleans and chunks them,
and stores them in one namespace of the ``KoaKnowledgeStore``.

Supported sources:
    • ``.json`` — a list of snippet objects::

          [{"text": "...", "pre_context": "...", "post_context": "..."}]

      Each object becomes one record; only ``text`` is required.
    • ``.txt`` / ``.md`` — free text, cleaned and split into chunks of at
      most ``CHUNK_SIZE`` characters on paragraph → line → sentence →
      word boundaries.

Files are processed in parallel via ``ThreadPoolExecutor`` (embedding
calls are I/O-bound).  An MD5 hash cache skips unchanged files.

Usage:
    from koa.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(store)
    summary = pipeline.run()
"""

from __future__ import annotations

import hashlib
import json
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from koa.config.settings import settings
from koa.src.database.vector_store import DocumentMetadata, KoaKnowledgeStore
from koa.src.utils.logger import get_logger
from koa.src.utils.text_utils import clean_text, split_text

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = {".txt", ".md", ".json"}


class SnippetFormatError(ValueError):
    """A ``.json`` source is not a list of snippet objects."""


class IngestionPipeline:
    """
    End-to-end snippet ingestion: read → clean → chunk → embed → store.

    Parameters
    ----------
    store
        An initialised ``KoaKnowledgeStore`` (injected).
    source_dir
        Override the source directory. Defaults to ``settings.KNOWLEDGE_DIR``.
    namespace
        Target namespace. Defaults to the store's namespace.
    max_workers
        Number of parallel threads for file processing.
    chunk_size
        Maximum characters per free-text chunk.
    cache_path
        Override the hash cache file.
    """

    def __init__(self, store: KoaKnowledgeStore, source_dir: Path | None = None, namespace: str | None = None, max_workers: int | None = None, chunk_size: int | None = None, cache_path: Path | None = None) -> None:
        self._store = store
        self._source_dir = Path(source_dir or settings.KNOWLEDGE_DIR)
        self._namespace = namespace or store.namespace
        self._max_workers = max_workers or settings.MAX_WORKERS
        self._chunk_size = chunk_size or settings.CHUNK_SIZE

        # Keyed by namespace + filename so namespaces ingest independently
        self._hash_cache_path: Path = cache_path or settings.PROCESSED_DIR / "ingestion_hashes.json"
        self._hash_cache: dict[str, str] = self._load_hash_cache()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    def run(self) -> dict[str, Any]:
        """
        Execute the ingestion pipeline.

        Returns
        -------
        dict
            ``total_files``, ``files_processed``, ``files_skipped``,
            ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        source = self._source_dir

        if not source.exists():
            logger.warning("Source directory does not exist: %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        files = sorted(f for f in source.iterdir() if f.is_file() and f.suffix.lower() in _SUPPORTED_EXTENSIONS)

        if not files:
            logger.warning("No supported files found in %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("Starting ingestion — %d file(s) from %s into namespace '%s'", len(files), source, self._namespace)

        total_chunks = 0
        files_processed = 0
        files_skipped = 0

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            future_to_path = {pool.submit(self._ingest_file, fp): fp for fp in files}

            for future in as_completed(future_to_path):
                filepath = future_to_path[future]
                try:
                    result = future.result()
                except Exception:
                    logger.exception("Failed to ingest file: %s", filepath.name)
                    continue
                if result == -1:
                    files_skipped += 1
                else:
                    total_chunks += result
                    files_processed += 1

        self._save_hash_cache()

        elapsed = time.perf_counter() - t_start
        logger.info("Ingestion complete — %d file(s) processed, %d skipped, %d chunk(s) stored in %.2fs.", files_processed, files_skipped, total_chunks, elapsed)
        return self._summary(len(files), files_processed, files_skipped, total_chunks, elapsed)

    # ══════════════════════════════════════════════════════════════════
    #  PER-FILE PROCESSING
    # ══════════════════════════════════════════════════════════════════

    def _ingest_file(self, filepath: Path) -> int:
        """
        Read, chunk, and store a single file.

        Returns the number of records added, or ``-1`` on a cache hit.
        """
        cache_key = f"{self._namespace}:{filepath.name}"
        file_hash = self._compute_file_hash(filepath)
        if self._hash_cache.get(cache_key) == file_hash:
            logger.info("CACHE_HIT — Skipping unchanged file: %s", filepath.name)
            return -1

        raw_text = self._read_file(filepath)
        if not raw_text.strip():
            logger.warning("Skipping empty file: %s", filepath.name)
            return 0

        if filepath.suffix.lower() == ".json":
            texts, metadatas = self.parse_snippets(raw_text, filepath.name)
        else:
            texts, metadatas = self.chunk_text(raw_text, filepath.name, self._chunk_size)

        logger.info("File '%s' → %d record(s).", filepath.name, len(texts))
        added = self._store.add_documents(texts, metadatas, namespace=self._namespace)

        self._hash_cache[cache_key] = file_hash
        return added

    # ══════════════════════════════════════════════════════════════════
    #  PARSING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def parse_snippets(raw_text: str, source_file: str) -> tuple[list[str], list[DocumentMetadata]]:
        """Turn a JSON snippet list into parallel text / metadata lists."""
        try:
            items = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise SnippetFormatError(f"{source_file}: invalid JSON ({exc})") from exc
        if not isinstance(items, list):
            raise SnippetFormatError(f"{source_file}: expected a list of snippets")

        texts: list[str] = []
        metadatas: list[DocumentMetadata] = []
        for idx, item in enumerate(items):
            if not isinstance(item, dict) or not str(item.get("text", "")).strip():
                logger.warning("Skipping snippet %d in %s: missing text.", idx, source_file)
                continue
            texts.append(clean_text(str(item["text"])))
            metadatas.append({"pre_context": clean_text(str(item.get("pre_context", ""))), "post_context": clean_text(str(item.get("post_context", ""))), "source_file": source_file, "chunk_index": idx})
        return texts, metadatas


    @staticmethod
    def chunk_text(raw_text: str, source_file: str, chunk_size: int) -> tuple[list[str], list[DocumentMetadata]]:
        """Clean and split free text into chunk records."""
        chunks = split_text(clean_text(raw_text), chunk_size)
        metadatas: list[DocumentMetadata] = [{"source_file": source_file, "chunk_index": idx} for idx in range(len(chunks))]
        return chunks, metadatas


    @staticmethod
    def _read_file(filepath: Path) -> str:
        return filepath.read_text(encoding="utf-8-sig")

    # ══════════════════════════════════════════════════════════════════
    #  MD5 CACHING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _compute_file_hash(filepath: Path) -> str:
        """Return the MD5 hex digest of a file's contents."""
        hasher = hashlib.md5()
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(8192), b""):
                hasher.update(block)
        return hasher.hexdigest()

    def _load_hash_cache(self) -> dict[str, str]:
        if self._hash_cache_path.exists():
            try:
                return json.loads(self._hash_cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt hash cache — starting fresh.")
        return {}

    def _save_hash_cache(self) -> None:
        self._hash_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._hash_cache_path.write_text(json.dumps(self._hash_cache, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("Hash cache saved to %s", self._hash_cache_path)

    # ── Summary helper ─────────────────────────────────────────────────

    @staticmethod
    def _summary(total: int, processed: int, skipped: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {
            "total_files": total,
            "files_processed": processed,
            "files_skipped": skipped,
            "total_chunks": chunks,
            "elapsed_seconds": round(elapsed, 2),
        }

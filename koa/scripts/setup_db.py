"""
Koa - Knowledge Store Setup & Ingestion Script
================================================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on a missing ``GOOGLE_API_KEY``).
    2. Initialise the embedder and ``KoaKnowledgeStore``
       (optionally drop the existing table).
    3. Run the ``IngestionPipeline`` into the chosen namespace.
    4. Print a structured execution summary.

Flags:
    --drop         Drop the table before ingesting (cache preserved).
    --purge        Drop the table AND clear the hash cache (full re-ingestion).
    --drop-only    Drop the table and exit immediately (no ingestion).
    --namespace    Namespace to ingest into (default: KNOWLEDGE_NAMESPACE).

Usage:
    koa-setup-db
    koa-setup-db --purge
    koa-setup-db --namespace campus
"""

from __future__ import annotations

import argparse
import sys
import time


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="koa-setup-db", description="Koa — initialise the knowledge store and ingest practice snippets.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the table before ingesting (hash cache preserved).")
    parser.add_argument("--purge", action="store_true", default=False, help="Drop the table AND clear the hash cache (full clean re-ingestion).")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the table and exit (no ingestion).")
    parser.add_argument("--namespace", default=None, help="Namespace to ingest into (default: KNOWLEDGE_NAMESPACE).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env ────────────────────────────────────────
    try:
        from koa.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    from koa.src.utils.logger import get_logger
    logger = get_logger(__name__)

    namespace = args.namespace or settings.KNOWLEDGE_NAMESPACE
    _print_header(settings, namespace)

    # ── 1. Initialise embedder ─────────────────────────────────────────
    logger.info("Initialising embedding model: %s", settings.EMBEDDING_MODEL)
    try:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    except Exception:
        logger.exception("Failed to initialise embedding model.")
        sys.exit(1)

    # ── 2. Initialise KoaKnowledgeStore ────────────────────────────────
    from koa.src.database.vector_store import KoaKnowledgeStore

    store = KoaKnowledgeStore(embedder=embedder, namespace=namespace)

    if args.drop or args.purge or args.drop_only:
        logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
        store.drop_table()

        if args.purge:
            cache_path = settings.PROCESSED_DIR / "ingestion_hashes.json"
            if cache_path.exists():
                cache_path.unlink()
                logger.warning("Hash cache deleted: %s", cache_path)
            else:
                logger.info("No hash cache to clear.")

        if args.drop_only:
            logger.info("--drop-only: Table dropped. Exiting.")
            _print_footer({"total_files": 0, "files_processed": 0, "files_skipped": 0, "total_chunks": 0}, time.perf_counter() - t_start)
            return

    logger.info("KnowledgeStore ready — %r", store)

    # ── 3. Run IngestionPipeline ───────────────────────────────────────
    from koa.src.core.ingestor import IngestionPipeline

    summary = IngestionPipeline(store, namespace=namespace).run()

    # ── 4. Print execution summary ─────────────────────────────────────
    _print_footer(summary, time.perf_counter() - t_start)


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, namespace: str) -> None:
    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    print()
    print("=" * 60)
    print("  KOA — Knowledge Store Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LanceDB      : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  Table        : {settings.LANCEDB_TABLE_NAME}")    # type: ignore[attr-defined]
    print(f"  Namespace    : {namespace}")
    print(f"  Source dir   : {settings.KNOWLEDGE_DIR}")         # type: ignore[attr-defined]
    print(f"  Chunk size   : {settings.CHUNK_SIZE} chars")      # type: ignore[attr-defined]
    print(f"  Workers      : {settings.MAX_WORKERS}")           # type: ignore[attr-defined]
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_footer(summary: dict, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total files scanned  : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files skipped (cache): {summary['files_skipped']}")
    print(f"  Total chunks stored  : {summary['total_chunks']}")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()

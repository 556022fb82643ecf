"""
Koa - KoaKnowledgeStore
=========================
OOP wrapper around LanceDB providing a clean interface for:
  • Namespaced snippet insertion (embedding + metadata) with batching
  • Top-K similarity search by raw query text inside one namespace

Design decisions:
  • **Cached DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per URI to avoid file-lock issues.
  • **Dependency Injection** — the embedder is injected, never
    hard-coded.  Callers hand the store plain text; embedding the
    query is the store's job.
  • **Namespaces** — a ``namespace`` column partitions the table and
    every search is pre-filtered on it.
  • **Lazy schema** — the table is created on first write so the
    fixed-size vector column matches the embedder's dimension.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from koa.src.database.vector_store import KoaKnowledgeStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    store = KoaKnowledgeStore(embedder)
    store.add_documents(texts=[...], metadatas=[...])
    results = store.search("I can't focus", limit=5)
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

import lancedb
import pyarrow as pa

from koa.config.settings import settings
from koa.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
DocumentMetadata = dict[str, str | int]
DocumentRecord = dict[str, str | int | float | list[float]]
SearchResult = dict[str, str | int | float | list[float]]


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


# ── Constants ──────────────────────────────────────────────────────────
_EMBED_BATCH_SIZE = 64
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}

# Columns the store manages itself; never part of a snippet's content.
_BOOKKEEPING_COLUMNS = frozenset({"vector", "_distance", "namespace", "source_file", "chunk_index"})


def build_schema(dimension: int) -> pa.Schema:
    """Arrow schema for the snippet table with a *dimension*-wide vector."""
    return pa.schema([
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("namespace", pa.utf8()),
        pa.field("text", pa.utf8()),
        pa.field("pre_context", pa.utf8()),
        pa.field("post_context", pa.utf8()),
        pa.field("source_file", pa.utf8()),
        pa.field("chunk_index", pa.int32()),
    ])


def _get_connection(uri: str, api_key: str | None = None, region: str | None = None) -> lancedb.DBConnection:
    """
    Return a cached ``lancedb.DBConnection`` for *uri*.

    Thread-safe via ``_DB_LOCK``.  Credentials are only passed for
    LanceDB Cloud (``db://``) URIs.
    """
    if uri not in _db_connection_cache:
        with _DB_LOCK:
            if uri not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", uri)
                if uri.startswith("db://"):
                    _db_connection_cache[uri] = lancedb.connect(uri, api_key=api_key, region=region)
                else:
                    _db_connection_cache[uri] = lancedb.connect(uri)
    return _db_connection_cache[uri]


def _quote(value: str) -> str:
    """Quote *value* as a SQL string literal for a LanceDB ``where`` clause."""
    return "'" + value.replace("'", "''") + "'"


class KoaKnowledgeStore:
    """
    Namespaced snippet store over a LanceDB table.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    db_path
        Override the database URI.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    namespace
        Default namespace for reads and writes.  Defaults to
        ``settings.KNOWLEDGE_NAMESPACE``.
    """

    __slots__ = ("embedder", "_db_path", "_table_name", "namespace", "db", "table")

    def __init__(self, embedder: Embedder, db_path: str | None = None, table_name: str | None = None, namespace: str | None = None) -> None:
        self.embedder: Embedder = embedder
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self.namespace: str = namespace or settings.KNOWLEDGE_NAMESPACE
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the LanceDB connection and the table if it exists."""
        api_key = settings.LANCEDB_API_KEY.get_secret_value() if settings.LANCEDB_API_KEY else None
        try:
            self.db = _get_connection(self._db_path, api_key=api_key, region=settings.LANCEDB_REGION)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                logger.info("Table '%s' not found; it will be created on first write.", self._table_name)

        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise
        except Exception:
            logger.exception("Unexpected error connecting to LanceDB.")
            raise


    def add_documents(self, texts: list[str], metadatas: list[DocumentMetadata], namespace: str | None = None) -> int:
        """
        Embed a batch of snippets and persist them with metadata.

        Parameters
        ----------
        texts
            Snippet bodies to embed and store.
        metadatas
            Parallel list of dicts (``pre_context``, ``post_context``,
            ``source_file``, ``chunk_index``).
        namespace
            Target namespace; defaults to the store's namespace.

        Returns
        -------
        int
            Number of rows added.

        Raises
        ------
        ValueError
            If ``texts`` and ``metadatas`` have mismatched lengths.
        RuntimeError
            If the database connection is missing.
        """
        if len(texts) != len(metadatas):
            raise ValueError(f"Length mismatch: {len(texts)} texts vs {len(metadatas)} metadatas.")
        if self.db is None:
            raise RuntimeError("LanceDB connection is not initialised.")
        if not texts:
            return 0

        target = namespace or self.namespace
        logger.info("Embedding %d snippet(s) for namespace '%s' in batches of %d …", len(texts), target, _EMBED_BATCH_SIZE)

        all_vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                all_vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise

        records: list[DocumentRecord] = [
            {"vector": vec, "namespace": target, "text": txt, "pre_context": str(meta.get("pre_context", "")), "post_context": str(meta.get("post_context", "")), "source_file": str(meta.get("source_file", "unknown")), "chunk_index": int(meta.get("chunk_index", 0))}
            for txt, vec, meta in zip(texts, all_vectors, metadatas)
        ]

        with _DB_LOCK:
            if self.table is None:
                self.table = self.db.create_table(self._table_name, schema=build_schema(len(all_vectors[0])), exist_ok=True)
                logger.info("Created table '%s' (dimension=%d).", self._table_name, len(all_vectors[0]))
            try:
                self.table.add(records)
            except OSError as exc:
                logger.error("Failed to write records to LanceDB: %s", exc)
                raise

        logger.info("Added %d snippet(s). Table '%s' now has %d total rows.", len(records), self._table_name, self.table.count_rows())
        return len(records)


    def search(self, query_text: str, limit: int = 5, namespace: str | None = None) -> list[SearchResult]:
        """
        Top-*limit* similarity search inside one namespace.

        Parameters
        ----------
        query_text
            Raw user text; embedded here.
        limit
            Maximum results (default 5).
        namespace
            Namespace to search; defaults to the store's namespace.

        Returns
        -------
        list[SearchResult]
            Content fields of each matched row, nearest first.
            Bookkeeping columns are stripped.
        """
        target = namespace or self.namespace
        if self.table is None:
            logger.warning("Table '%s' does not exist yet; search returns nothing.", self._table_name)
            return []

        try:
            query_vector = self.embedder.embed_query(query_text)
        except Exception as exc:
            logger.error("Failed to embed query: %s", exc)
            raise

        rows = self.table.search(query_vector).where(f"namespace = {_quote(target)}", prefilter=True).limit(limit).to_list()
        logger.info("Search in namespace '%s' returned %d result(s) from %s.", target, len(rows), [row.get("source_file") for row in rows])

        return [{key: value for key, value in row.items() if key not in _BOOKKEEPING_COLUMNS} for row in rows]


    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def drop_table(self) -> None:
        """Drop the snippet table (used before re-ingestion)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            logger.info("Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)
        except OSError as exc:
            logger.error("Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise
        finally:
            self.table = None


    def __repr__(self) -> str:
        return f"KoaKnowledgeStore(db='{self._db_path}', table='{self._table_name}', namespace='{self.namespace}', rows={self.count()})"

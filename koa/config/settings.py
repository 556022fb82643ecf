"""
Koa - Centralized Configuration
================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``LANCEDB_API_KEY`` is also ``SecretStr`` and only needed when
  ``LANCEDB_PATH`` points at a LanceDB Cloud ``db://`` URI.

Knowledge Store
---------------
``LANCEDB_PATH`` is the store endpoint, ``LANCEDB_TABLE_NAME`` the index
name and ``KNOWLEDGE_NAMESPACE`` the partition searched on every request
(``"default"`` when unset).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini chat + embeddings).  **Required.**
        Access the raw value with ``settings.GOOGLE_API_KEY.get_secret_value()``.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity and CORS.
    LOG_LEVEL : str | None
        Overrides the ``ENV``-derived log level when set.
    LLM_MODEL : str
        Model identifier for reply generation.
    LLM_TEMPERATURE : float
        Fixed sampling temperature for reply generation.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    LANCEDB_PATH : str
        Local directory or ``db://`` URI of the knowledge store.
    LANCEDB_TABLE_NAME : str
        Table holding the practice snippets.
    KNOWLEDGE_NAMESPACE : str
        Namespace searched by the reply pipeline.
    SEARCH_TOP_K : int
        Number of snippets retrieved per reply.
    CHUNK_SIZE : int
        Maximum characters per ingested text chunk.
    MAX_WORKERS : int
        Thread pool size for parallel file ingestion.
    API_URL : str
        Chat endpoint used by the terminal client.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    KNOWLEDGE_DIR: Path = BASE_DIR / "data" / "knowledge"
    PROCESSED_DIR: Path = BASE_DIR / "data" / "processed"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # ── API Keys (REQUIRED, no default) ────────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Model Configuration ────────────────────────────────────────────
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.6
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"

    # ── Knowledge Store (LanceDB) ──────────────────────────────────────
    LANCEDB_PATH: str = str(BASE_DIR / "data" / "lancedb")
    LANCEDB_API_KEY: SecretStr | None = None
    LANCEDB_REGION: str = "us-east-1"
    LANCEDB_TABLE_NAME: str = "koa_practices"
    KNOWLEDGE_NAMESPACE: str = "default"
    SEARCH_TOP_K: int = 5

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 500
    MAX_WORKERS: int = 4

    # ── HTTP ───────────────────────────────────────────────────────────
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 8000
    API_URL: str = "http://127.0.0.1:8000/api/chat"

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"LLM_TEMPERATURE must be 0.0–2.0, got {v}")
        return v


    @field_validator("KNOWLEDGE_NAMESPACE")
    @classmethod
    def _namespace_default(cls, v: str) -> str:
        # An empty variable counts as unset.
        return v.strip() or "default"


    @field_validator("SEARCH_TOP_K")
    @classmethod
    def _top_k_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"SEARCH_TOP_K must be ≥ 1, got {v}")
        return v


    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 50:
            raise ValueError(f"CHUNK_SIZE must be ≥ 50, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from koa.config.settings import settings
settings = Settings()

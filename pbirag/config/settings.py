"""
pbirag - Centralized Configuration
===================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``LANCEDB_API_KEY`` is optional and only needed when ``LANCEDB_URI``
  points at LanceDB Cloud (``db://...``).

Generation
----------
The rewriter and the answer generator share one Gemini model but run
with different sampling: the rewriter is near-deterministic with a
short cap, the answer generator is warmer and longer-form.
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
        API key for Google AI Studio (Gemini).  **Required.**
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
        Must match the model used to build the index.
    LLM_MODEL : str
        Gemini model used for both query rewriting and answering.
    SEARCH_TOP_K : int
        Number of passages requested from the vector index.
    HISTORY_MAX_TURNS : int
        Sliding-window bound on a session's stored turns.
    DEFAULT_SESSION_ID : str
        Session used when a client does not send ``sessionId``.
    EXTERNAL_CALL_TIMEOUT_SECONDS : float
        Upper bound for every embedding / search / LLM call.
    LANCEDB_URI : str
        Local directory or LanceDB Cloud URI (``db://<project>``).
    FRONTEND_URL : str
        Only origin allowed by CORS.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/text-embedding-004"
    LLM_MODEL: str = "gemini-2.0-flash"

    REWRITE_TEMPERATURE: float = 0.3
    REWRITE_MAX_OUTPUT_TOKENS: int = 200
    ANSWER_TEMPERATURE: float = 0.7
    ANSWER_MAX_OUTPUT_TOKENS: int = 2048

    # ── Retrieval & Memory ─────────────────────────────────────────────
    SEARCH_TOP_K: int = 10
    HISTORY_MAX_TURNS: int = 20
    DEFAULT_SESSION_ID: str = "default"
    EXTERNAL_CALL_TIMEOUT_SECONDS: float = 30.0

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_URI: str = str(BASE_DIR / "data" / "lancedb")
    LANCEDB_API_KEY: SecretStr | None = None
    LANCEDB_REGION: str = "us-east-1"
    LANCEDB_TABLE_NAME: str = "powerbi_docs"

    # ── HTTP Server ────────────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:5173"
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("SEARCH_TOP_K")
    @classmethod
    def _top_k_range(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(f"SEARCH_TOP_K must be 1–100, got {v}")
        return v


    @field_validator("HISTORY_MAX_TURNS")
    @classmethod
    def _history_bound(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"HISTORY_MAX_TURNS must be ≥ 2, got {v}")
        return v


    @field_validator("REWRITE_TEMPERATURE", "ANSWER_TEMPERATURE")
    @classmethod
    def _temperature_range(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"Temperature must be 0.0–2.0, got {v}")
        return v


    @field_validator("EXTERNAL_CALL_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"EXTERNAL_CALL_TIMEOUT_SECONDS must be > 0, got {v}")
        return v


    @field_validator("FRONTEND_URL")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from pbirag.config.settings import settings
settings = Settings()

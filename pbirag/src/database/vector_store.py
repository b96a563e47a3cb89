"""
pbirag - Embedding & Vector Search Clients
===========================================
Thin async wrappers around the two retrieval collaborators:

``EmbeddingClient``
    Turns the standalone query into a vector through any LangChain
    ``Embeddings`` implementation (``GoogleGenerativeAIEmbeddings`` in
    production).
``LanceSearchClient``
    Nearest-neighbour search over a LanceDB table populated ahead of
    time by the ingestion job.  ``LANCEDB_URI`` may be a local directory
    or a LanceDB Cloud URI (``db://...``).

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches one
    ``lancedb.DBConnection`` per URI.
  • **Dependency Injection** — the embedder is injected, never
    hard-coded, so tests can pass a fake embedding model.
  • **Blocking client off the loop** — LanceDB calls run in a worker
    thread via ``asyncio.to_thread``.
  • Every failure is re-raised as ``EmbeddingError`` / ``SearchError``;
    both are fatal for the request.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Protocol, runtime_checkable

import lancedb

from pbirag.config.settings import settings
from pbirag.src.core.errors import EmbeddingError, SearchError
from pbirag.src.core.models import RetrievedPassage
from pbirag.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
SearchRow = dict[str, str | int | float | list[float] | None]


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    async def aembed_query(self, text: str) -> list[float]: ...


# ── Connection cache ──────────────────────────────────────────────────
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(uri: str, api_key: str | None = None, region: str | None = None) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *uri*.

    Thread-safe via ``_DB_LOCK``.  ``api_key`` / ``region`` are only
    forwarded for LanceDB Cloud URIs.
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


def build_embedder() -> Embedder:
    """Create the production Gemini embedding model."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedder initialised: %s", settings.EMBEDDING_MODEL)
    return embedder


# ══════════════════════════════════════════════════════════════════════
#  EMBEDDING CLIENT
# ══════════════════════════════════════════════════════════════════════


class EmbeddingClient:
    """Embeds a single query.  No fallback: a failure aborts the request."""

    __slots__ = ("_embedder",)

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder


    async def embed(self, text: str, timeout: float | None = None) -> list[float]:
        t_start = time.perf_counter()
        try:
            vector = await asyncio.wait_for(self._embedder.aembed_query(text), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[EMBED] Embedding timed out after %.1fs.", timeout)
            raise EmbeddingError(f"embedding timed out after {timeout}s") from exc
        except Exception as exc:
            logger.error("[EMBED] Failed to embed query: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        if not vector:
            raise EmbeddingError("embedding model returned an empty vector")

        logger.debug("[EMBED] %d-dim vector in %.1fms", len(vector), (time.perf_counter() - t_start) * 1000)
        return list(vector)


# ══════════════════════════════════════════════════════════════════════
#  VECTOR SEARCH CLIENT
# ══════════════════════════════════════════════════════════════════════


class LanceSearchClient:
    """
    Top-K similarity search over an existing LanceDB table.

    Parameters
    ----------
    uri
        Override the database URI.  Defaults to ``settings.LANCEDB_URI``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    text_field / source_field
        Metadata columns holding the passage text and its origin.

    The table is opened lazily on the first search, so the service can
    start before the index has been built.
    """

    __slots__ = ("_uri", "_table_name", "_text_field", "_source_field", "_table", "_open_lock")

    def __init__(self, uri: str | None = None, table_name: str | None = None, text_field: str = "text", source_field: str = "source") -> None:
        self._uri: str = str(uri or settings.LANCEDB_URI)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._text_field = text_field
        self._source_field = source_field
        self._table: lancedb.table.Table | None = None
        self._open_lock = threading.Lock()


    def _open_table(self) -> lancedb.table.Table:
        if self._table is None:
            with self._open_lock:
                if self._table is None:
                    api_key = settings.LANCEDB_API_KEY.get_secret_value() if settings.LANCEDB_API_KEY else None
                    db = _get_connection(self._uri, api_key=api_key, region=settings.LANCEDB_REGION)
                    self._table = db.open_table(self._table_name)
                    logger.info("Opened table '%s' at %s.", self._table_name, self._uri)
        return self._table


    def _query(self, vector: list[float], top_k: int) -> list[SearchRow]:
        table = self._open_table()
        return table.search(vector).limit(top_k).to_list()


    async def search(self, vector: list[float], top_k: int | None = None, timeout: float | None = None) -> list[RetrievedPassage]:
        """
        Return at most ``top_k`` passages, closest first.

        Rows without usable text are dropped rather than failing the
        request.

        Raises
        ------
        SearchError
            Connection, missing table, query failure or timeout.
        """
        top_k = top_k or settings.SEARCH_TOP_K
        if top_k < 1:
            raise ValueError(f"top_k must be ≥ 1, got {top_k}")

        t_start = time.perf_counter()
        try:
            rows = await asyncio.wait_for(asyncio.to_thread(self._query, vector, top_k), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[SEARCH] Query timed out after %.1fs.", timeout)
            raise SearchError(f"vector search timed out after {timeout}s") from exc
        except Exception as exc:
            logger.error("[SEARCH] Query against '%s' failed: %s", self._table_name, exc)
            raise SearchError(str(exc)) from exc

        passages = self._to_passages(rows)
        logger.info("[SEARCH] %d row(s) → %d usable passage(s) in %.1fms", len(rows), len(passages), (time.perf_counter() - t_start) * 1000)
        return passages[:top_k]


    def _to_passages(self, rows: list[SearchRow]) -> list[RetrievedPassage]:
        passages: list[RetrievedPassage] = []
        for row in rows:
            text = row.get(self._text_field)
            if not isinstance(text, str) or not text.strip():
                continue
            distance = row.get("_distance")
            passages.append(RetrievedPassage(text=text, source=str(row.get(self._source_field) or "unknown"), distance=float(distance) if distance is not None else None))

        # LanceDB already orders by distance; keep it explicit for other backends
        passages.sort(key=lambda p: float("inf") if p.distance is None else p.distance)
        return passages


    def __repr__(self) -> str:
        return f"LanceSearchClient(uri='{self._uri}', table='{self._table_name}')"

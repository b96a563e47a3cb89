"""Shared fixtures for the pbirag tests."""

from __future__ import annotations

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding

from pbirag.src.core.history import SessionHistoryStore
from pbirag.src.core.rag_engine import AnswerGenerator, QueryRewriter, RAGManager
from pbirag.src.database.vector_store import EmbeddingClient

from tests.fakes import DAX_PASSAGES, ScriptedChatModel, StaticSearchClient, echo_last


@pytest.fixture
def history() -> SessionHistoryStore:
    return SessionHistoryStore(max_turns=6)


@pytest.fixture
def rewriter_llm() -> ScriptedChatModel:
    return ScriptedChatModel(echo_last)


@pytest.fixture
def answer_llm() -> ScriptedChatModel:
    return ScriptedChatModel(lambda messages: f"Answer to: {messages[-1].content}")


@pytest.fixture
def search_client() -> StaticSearchClient:
    return StaticSearchClient(DAX_PASSAGES)


@pytest.fixture
def make_rag(history: SessionHistoryStore, rewriter_llm: ScriptedChatModel, answer_llm: ScriptedChatModel, search_client: StaticSearchClient):
    """Build a ``RAGManager`` from the default fakes, overriding any part."""

    def _make(**overrides: object) -> RAGManager:
        parts: dict[str, object] = {
            "rewriter": QueryRewriter(rewriter_llm),
            "embedding_client": EmbeddingClient(DeterministicFakeEmbedding(size=8)),
            "search_client": search_client,
            "generator": AnswerGenerator(answer_llm),
            "history": history,
            "top_k": 10,
            "call_timeout": 2.0,
        }
        parts.update(overrides)
        return RAGManager(**parts)  # type: ignore[arg-type]

    return _make

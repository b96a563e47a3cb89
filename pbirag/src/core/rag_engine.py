"""
pbirag - RAG Engine
====================
Orchestrates the per-request Retrieval-Augmented Generation pipeline
for Power BI questions.

Architecture
------------
``QueryRewriter``
    Turns a follow-up question into a standalone one using the chat
    history.  Fail-open: any error returns the original question.

``AnswerGenerator``
    Answers from the retrieved context only, over the full session
    history.  Errors are fatal for the request.

``RAGManager``
    Pipeline orchestrator.  Flow:
        1. Validate question  → ``QuestionValidationError`` (HTTP 400)
        2. Rewrite query      → never fails
        3. Embed              → ``EmbeddingError`` aborts
        4. Search             → ``SearchError`` aborts;
                                no passages → canned answer, no LLM call
        5. Append user turn, generate → ``GenerationError`` aborts
                                (the user turn stays in history)
        6. Append model turn, trim the sliding window
        7. Return ``QueryAnswered``

Concurrency
-----------
The session's ``asyncio.Lock`` is held for the whole pipeline, so two
requests on one session run one after the other; other sessions are
never blocked.  Every external call is bounded by
``EXTERNAL_CALL_TIMEOUT_SECONDS`` or by the caller's own deadline,
whichever is sooner.

Usage:
    from pbirag.src.core.rag_engine import RAGManager
    rag = RAGManager.from_settings()
    result = await rag.ask("What is DAX?", session_id="abc")
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol, runtime_checkable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from pbirag.config.prompt_templates import ANSWER_SYSTEM_PROMPT, CONTEXT_SEPARATOR, NO_CONTEXT_RESPONSE, QUERY_REWRITE_PROMPT
from pbirag.config.settings import settings
from pbirag.src.core.errors import INVALID_QUESTION_MESSAGE, DependencyError, GenerationError, QuestionValidationError
from pbirag.src.core.history import SessionHistoryStore
from pbirag.src.core.models import QueryAnswered, QueryFailed, QueryResult, RetrievedPassage, Turn
from pbirag.src.database.vector_store import EmbeddingClient, LanceSearchClient
from pbirag.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Anything with LangChain's async chat-model entry point."""

    async def ainvoke(self, input: list[BaseMessage], **kwargs: object) -> BaseMessage: ...


@runtime_checkable
class SearchClient(Protocol):
    async def search(self, vector: list[float], top_k: int | None = None, timeout: float | None = None) -> list[RetrievedPassage]: ...


def build_chat_model(temperature: float, max_output_tokens: int) -> ChatModel:
    """Initialise a Gemini chat model via LangChain."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=temperature, max_output_tokens=max_output_tokens, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f, max_output_tokens=%d)", settings.LLM_MODEL, temperature, max_output_tokens)
    return llm


def to_messages(history: list[Turn]) -> list[BaseMessage]:
    """Map stored turns onto LangChain chat messages, preserving order."""
    return [HumanMessage(content=turn.text) if turn.role == "user" else AIMessage(content=turn.text) for turn in history]


def message_text(message: object) -> str:
    """Extract plain text from a chat-model reply (string or content parts)."""
    content = message.content if hasattr(message, "content") else message
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


def validate_question(question: object) -> str:
    """Return the stripped question or raise ``QuestionValidationError``."""
    if not isinstance(question, str) or not question.strip():
        raise QuestionValidationError(INVALID_QUESTION_MESSAGE)
    return question.strip()


# ══════════════════════════════════════════════════════════════════════
#  QUERY REWRITER
# ══════════════════════════════════════════════════════════════════════


class QueryRewriter:
    """
    Rephrase a follow-up question into a standalone question.

    The LLM sees the session history followed by the new question and a
    rewriting-only system instruction.  Any failure is logged and the
    original question is used instead.
    """

    __slots__ = ("_llm",)

    def __init__(self, llm: ChatModel) -> None:
        self._llm = llm


    async def rewrite(self, question: str, history: list[Turn], timeout: float | None = None) -> str:
        messages = [SystemMessage(content=QUERY_REWRITE_PROMPT), *to_messages(history), HumanMessage(content=question)]
        try:
            reply = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=timeout)
            rewritten = message_text(reply).strip()
        except Exception:
            logger.warning("[REWRITE] Query rewriting failed — using the original question.", exc_info=True)
            return question

        if not rewritten:
            logger.warning("[REWRITE] Empty rewrite — using the original question.")
            return question
        return rewritten


# ══════════════════════════════════════════════════════════════════════
#  ANSWER GENERATOR
# ══════════════════════════════════════════════════════════════════════


class AnswerGenerator:
    """Answer from retrieved context only, over the full session history."""

    __slots__ = ("_llm",)

    def __init__(self, llm: ChatModel) -> None:
        self._llm = llm


    @staticmethod
    def format_context(passages: list[RetrievedPassage]) -> str:
        """Join passage texts with a visible separator, in retrieval order."""
        return CONTEXT_SEPARATOR.join(p.text for p in passages)


    async def answer(self, history: list[Turn], context: str, timeout: float | None = None) -> str:
        messages = [SystemMessage(content=ANSWER_SYSTEM_PROMPT.format(context=context)), *to_messages(history)]
        try:
            reply = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[GENERATE] LLM call timed out after %.1fs.", timeout)
            raise GenerationError(f"answer generation timed out after {timeout}s") from exc
        except Exception as exc:
            logger.exception("[GENERATE] LLM call failed.")
            raise GenerationError(str(exc)) from exc

        answer = message_text(reply).strip()
        if not answer:
            raise GenerationError("LLM returned an empty answer")
        return answer


# ══════════════════════════════════════════════════════════════════════
#  RAG MANAGER
# ══════════════════════════════════════════════════════════════════════


class RAGManager:
    """
    Sequences rewrite → embed → search → generate for one question and
    keeps the session history up to date.

    Parameters
    ----------
    rewriter, embedding_client, search_client, generator
        The four collaborators; inject fakes in tests.
    history
        The ``SessionHistoryStore`` owning every session's turns.
    top_k
        Passages requested per search.  Defaults to ``settings.SEARCH_TOP_K``.
    call_timeout
        Per-call bound in seconds.  Defaults to
        ``settings.EXTERNAL_CALL_TIMEOUT_SECONDS``.
    """

    __slots__ = ("_rewriter", "_embedder", "_search", "_generator", "history", "_top_k", "_call_timeout")

    def __init__(self, rewriter: QueryRewriter, embedding_client: EmbeddingClient, search_client: SearchClient, generator: AnswerGenerator, history: SessionHistoryStore | None = None, top_k: int | None = None, call_timeout: float | None = None) -> None:
        self._rewriter = rewriter
        self._embedder = embedding_client
        self._search = search_client
        self._generator = generator
        self.history = history if history is not None else SessionHistoryStore(max_turns=settings.HISTORY_MAX_TURNS)
        self._top_k = top_k or settings.SEARCH_TOP_K
        self._call_timeout = call_timeout or settings.EXTERNAL_CALL_TIMEOUT_SECONDS


    @classmethod
    def from_settings(cls, history: SessionHistoryStore | None = None) -> RAGManager:
        """Wire the production Gemini + LanceDB collaborators."""
        from pbirag.src.database.vector_store import build_embedder

        return cls(
            rewriter=QueryRewriter(build_chat_model(settings.REWRITE_TEMPERATURE, settings.REWRITE_MAX_OUTPUT_TOKENS)),
            embedding_client=EmbeddingClient(build_embedder()),
            search_client=LanceSearchClient(),
            generator=AnswerGenerator(build_chat_model(settings.ANSWER_TEMPERATURE, settings.ANSWER_MAX_OUTPUT_TOKENS)),
            history=history,
        )


    def resolve_session_id(self, session_id: object) -> str:
        if not isinstance(session_id, str) or not session_id.strip():
            return settings.DEFAULT_SESSION_ID
        return session_id


    async def ask(self, question: object, session_id: object = None, timeout: float | None = None) -> QueryResult:
        """
        Run the full pipeline for one question.

        Raises
        ------
        QuestionValidationError
            Before any side effect, if ``question`` is not a non-empty
            string.

        Returns
        -------
        QueryResult
            ``QueryAnswered`` on success (including the no-context
            answer), ``QueryFailed`` when a fatal dependency failed.
        """
        question = validate_question(question)
        session_id = self.resolve_session_id(session_id)
        deadline = time.monotonic() + timeout if timeout else None

        async with self.history.session_lock(session_id):
            try:
                return await self._run(question, session_id, deadline)
            except DependencyError as exc:
                logger.error("[RAG] Pipeline failed at %s stage for session '%s': %s", exc.stage, session_id, exc)
                return QueryFailed(error=exc.public_message)


    def _timeout(self, deadline: float | None) -> float:
        if deadline is None:
            return self._call_timeout
        # A spent deadline still lets the call start so it fails as a timeout
        return max(min(self._call_timeout, deadline - time.monotonic()), 0.001)


    async def _run(self, question: str, session_id: str, deadline: float | None) -> QueryResult:
        t_start = time.perf_counter()
        history = self.history.get_or_create(session_id)
        logger.info("[RAG] Session '%s': %d turn(s) in history.", session_id, len(history))

        # ── Rewrite ───────────────────────────────────────────────────
        t_rewrite = time.perf_counter()
        standalone = await self._rewriter.rewrite(question, history, timeout=self._timeout(deadline))
        rewrite_ms = (time.perf_counter() - t_rewrite) * 1000
        logger.info("[RAG] Query rewritten in %.1fms: '%s' → '%s'", rewrite_ms, question[:60], standalone[:60])

        # ── Embed + search ────────────────────────────────────────────
        t_search = time.perf_counter()
        vector = await self._embedder.embed(standalone, timeout=self._timeout(deadline))
        passages = await self._search.search(vector, top_k=self._top_k, timeout=self._timeout(deadline))
        search_ms = (time.perf_counter() - t_search) * 1000

        self.history.append(session_id, Turn.user(standalone))

        if not passages:
            logger.warning("[RAG] No usable passages for '%s' — skipping generation.", standalone[:60])
            self.history.trim(session_id)
            return QueryAnswered(response=NO_CONTEXT_RESPONSE, transformed_query=standalone)

        # ── Generate ──────────────────────────────────────────────────
        t_llm = time.perf_counter()
        context = self._generator.format_context(passages)
        try:
            answer = await self._generator.answer(self.history.get_or_create(session_id), context, timeout=self._timeout(deadline))
        finally:
            # On failure the user turn stays; the window still holds
            self.history.trim(session_id)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        # ── History update ────────────────────────────────────────────
        self.history.append(session_id, Turn.model(answer))
        self.history.trim(session_id)

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (rewrite=%.1f, search=%.1f, llm=%.1f, passages=%d)", total_ms, rewrite_ms, search_ms, llm_ms, len(passages))
        return QueryAnswered(response=answer, transformed_query=standalone)

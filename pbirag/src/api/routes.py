"""
pbirag - API Routes
====================
  - POST /chat           → Run the RAG pipeline for one question
  - POST /clear-history  → Forget a session's conversation (idempotent)
  - GET  /health         → Liveness check

Each handler is a thin controller: it validates the body, delegates to
``RAGManager`` and shapes the JSON response.  Dependency failures come
back as ``{"success": false, "error": ...}`` with HTTP 200 so the UI can
render them inline; only invalid input (400) and unexpected errors
(500, see ``pbirag.src.main``) use error status codes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from pbirag.config.prompt_templates import HEALTH_MESSAGE, HISTORY_CLEARED_MESSAGE
from pbirag.src.api.schemas import ChatRequest, ClearHistoryRequest, ClearHistoryResponse, ErrorResponse, HealthResponse
from pbirag.src.core.errors import QuestionValidationError
from pbirag.src.core.rag_engine import RAGManager
from pbirag.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["RAG"])


def get_rag_manager(request: Request) -> RAGManager:
    """Return the ``RAGManager`` created by the application lifespan."""
    return request.app.state.rag_manager


@router.post("/chat")
async def chat(payload: ChatRequest | None = None, rag: RAGManager = Depends(get_rag_manager), x_request_timeout: float | None = Header(default=None, gt=0)) -> JSONResponse:
    payload = payload or ChatRequest()
    try:
        result = await rag.ask(payload.question, session_id=payload.session_id, timeout=x_request_timeout)
    except QuestionValidationError as exc:
        logger.info("[API] Rejected /chat request: %s", exc)
        return JSONResponse(status_code=400, content=ErrorResponse(error=str(exc)).model_dump())

    return JSONResponse(content=result.model_dump(by_alias=True))


@router.post("/clear-history")
async def clear_history(payload: ClearHistoryRequest | None = None, rag: RAGManager = Depends(get_rag_manager)) -> ClearHistoryResponse:
    payload = payload or ClearHistoryRequest()
    session_id = rag.resolve_session_id(payload.session_id)
    rag.history.clear(session_id)
    return ClearHistoryResponse(message=HISTORY_CLEARED_MESSAGE)


@router.get("/health")
async def health() -> HealthResponse:
    return HealthResponse(message=HEALTH_MESSAGE, timestamp=datetime.now(timezone.utc))

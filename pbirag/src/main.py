"""
pbirag - Application Entry Point
=================================
FastAPI application factory.  ``create_app()`` registers the API routes
under ``settings.API_PREFIX``, configures CORS for the chat UI and
installs the JSON error boundary.

Lifespan
--------
The ``RAGManager`` (and the ``SessionHistoryStore`` it owns) is created
when the server starts and dropped when it stops; it lives on
``app.state`` rather than in a module global.  Tests pass a pre-built
manager to ``create_app()`` and the lifespan leaves it alone.

Error boundary
--------------
- Request validation errors    → 400 ``{"success": false, "error": ...}``
- Unknown routes               → 404 ``{"success": false, "error": "Route not found"}``
- Anything unhandled           → 500 ``{"success": false, "error": "Internal server error"}``
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pbirag.config.settings import settings
from pbirag.src.api.routes import router
from pbirag.src.core.errors import INVALID_QUESTION_MESSAGE
from pbirag.src.core.rag_engine import RAGManager
from pbirag.src.utils.logger import get_logger

logger = get_logger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "rag_manager", None) is None:
        app.state.rag_manager = RAGManager.from_settings()
    logger.info("PowerBI RAG Server ready (env=%s, prefix=%s, history=%d turns/session).", settings.ENV, settings.API_PREFIX, app.state.rag_manager.history.max_turns)
    try:
        yield
    finally:
        logger.info("Shutting down — %d in-memory session(s) discarded.", len(app.state.rag_manager.history))


def create_app(rag_manager: RAGManager | None = None) -> FastAPI:
    app = FastAPI(title="PowerBI RAG Chatbot", lifespan=lifespan)
    app.state.rag_manager = rag_manager

    @app.middleware("http")
    async def _unhandled_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("[API] Unhandled error on %s %s", request.method, request.url.path)
            return _error(500, "Internal server error")

    app.add_middleware(CORSMiddleware, allow_origins=[settings.FRONTEND_URL], allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["*"], allow_credentials=True)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("[API] Invalid request on %s: %s", request.url.path, exc.errors())
        if any(err.get("loc", ("",))[0] == "header" for err in exc.errors()):
            return _error(400, "X-Request-Timeout must be a positive number of seconds")
        return _error(400, INVALID_QUESTION_MESSAGE if request.url.path.endswith("/chat") else "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error(404, "Route not found")
        return _error(exc.status_code, str(exc.detail))

    app.include_router(router, prefix=settings.API_PREFIX)
    return app


app = create_app()

"""
pbirag - Error Taxonomy
========================
``QuestionValidationError``
    Client-caused; rejected before the pipeline starts (HTTP 400).
``DependencyError``
    An embedding, search or generation call failed.  Fatal for the
    current request; the orchestrator turns it into a ``QueryFailed``.

Query-rewriting failures have no exception type: the rewriter absorbs
them and falls back to the original question.
"""

from __future__ import annotations

INVALID_QUESTION_MESSAGE = "Question is required and must be a non-empty string"


class PbiRagError(Exception):
    """Base class for every error raised by pbirag."""


class QuestionValidationError(PbiRagError, ValueError):
    """The incoming question is missing, not a string, or blank."""


class DependencyError(PbiRagError):
    """
    An external collaborator failed.

    ``public_message`` is safe to show to the end user; the underlying
    exception is chained via ``__cause__`` for the logs.
    """

    stage: str = "dependency"
    public_message: str = "An error occurred while processing your question."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail


class EmbeddingError(DependencyError):
    stage = "embedding"
    public_message = "Embedding service unavailable"


class SearchError(DependencyError):
    stage = "search"
    public_message = "Vector database unavailable"


class GenerationError(DependencyError):
    stage = "generation"
    public_message = "Failed to generate an answer"

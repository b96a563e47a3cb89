"""
pbirag - HTTP Request / Response Bodies
========================================
Request models accept the camelCase keys the chat UI sends
(``sessionId``).  ``question`` is deliberately optional at this level:
a missing question is reported by the route as a 400 with the same
error body as any other invalid question, not as a schema error.
``sessionId`` accepts any JSON value; anything other than a non-blank
string falls back to the default session.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    session_id: Any = Field(default=None, alias="sessionId")


class ClearHistoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Any = Field(default=None, alias="sessionId")


class ClearHistoryResponse(BaseModel):
    success: Literal[True] = True
    message: str


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str


class HealthResponse(BaseModel):
    status: Literal["OK"] = "OK"
    message: str
    timestamp: datetime

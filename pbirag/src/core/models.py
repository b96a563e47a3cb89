"""
pbirag - Domain Types
======================
Value objects that flow through the RAG pipeline.

``Turn``
    One message of a conversation (``user`` or ``model``).
``RetrievedPassage``
    A passage returned by vector search.  Lives for one request only.
``QueryAnswered`` / ``QueryFailed``
    The two variants of ``QueryResult``.  ``success`` is the tag, so a
    caller can never observe a half-filled result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "model"]


@dataclass(frozen=True, slots=True)
class Turn:
    """A single conversation message, replayed verbatim to the LLM."""

    role: Role
    text: str

    @classmethod
    def user(cls, text: str) -> Turn:
        return cls(role="user", text=text)

    @classmethod
    def model(cls, text: str) -> Turn:
        return cls(role="model", text=text)


@dataclass(frozen=True, slots=True)
class RetrievedPassage:
    text: str
    source: str = "unknown"
    distance: float | None = None


class QueryAnswered(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: Literal[True] = True
    response: str
    transformed_query: str = Field(serialization_alias="transformedQuery")


class QueryFailed(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error: str


QueryResult = Union[QueryAnswered, QueryFailed]

"""
pbirag - Session History Store
===============================
In-memory chat history keyed by ``session_id``.

- Lifetime = process lifetime; nothing is persisted.
- Each session holds an ordered list of ``Turn`` objects, bounded by a
  sliding window (``max_turns``): when trimmed, the oldest turns go
  first and the survivors keep their order.
- Every public operation takes ``_lock`` for the duration of a dict /
  list access only, so sessions never block each other.
- Readers get a *copy* of the sequence; the store is the sole owner of
  the live lists.

Per-session request serialisation is offered through
``session_lock()``: an ``asyncio.Lock`` the orchestrator holds while a
request for that session is in flight.  The lock map holds weak
references: a lock lives exactly as long as a request holds or awaits
it, so idle and cleared sessions leave nothing behind.
"""

from __future__ import annotations

import asyncio
import weakref
from threading import Lock

from pbirag.src.core.models import Turn
from pbirag.src.utils.logger import get_logger

logger = get_logger(__name__)


class SessionHistoryStore:
    """
    Bounded, thread-safe, in-memory conversation store.

    Parameters
    ----------
    max_turns
        Default bound applied by ``trim()`` when no explicit length is
        given.
    """

    __slots__ = ("_sessions", "_session_locks", "_lock", "max_turns")

    def __init__(self, max_turns: int = 20) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be ≥ 1, got {max_turns}")
        self.max_turns = max_turns
        self._sessions: dict[str, list[Turn]] = {}
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._lock = Lock()


    def get_or_create(self, session_id: str) -> list[Turn]:
        """Return a snapshot of the session's turns, creating it if unknown."""
        with self._lock:
            turns = self._sessions.setdefault(session_id, [])
            return list(turns)


    def append(self, session_id: str, turn: Turn) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, []).append(turn)


    def trim(self, session_id: str, max_len: int | None = None) -> int:
        """
        Keep only the most recent ``max_len`` turns.

        Returns the number of turns discarded.
        """
        limit = self.max_turns if max_len is None else max_len
        if limit < 0:
            raise ValueError(f"max_len must be ≥ 0, got {limit}")

        with self._lock:
            turns = self._sessions.get(session_id)
            if turns is None or len(turns) <= limit:
                return 0
            dropped = len(turns) - limit
            # Slice assignment keeps the same list object
            turns[:] = turns[dropped:]

        logger.debug("[HISTORY] Session '%s' trimmed by %d turn(s) (limit=%d).", session_id, dropped, limit)
        return dropped


    def clear(self, session_id: str) -> bool:
        """
        Forget a session.  Idempotent.

        Returns True if a session was actually removed.
        """
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None

        if removed:
            logger.info("[HISTORY] Session '%s' cleared.", session_id)
        return removed


    def session_lock(self, session_id: str) -> asyncio.Lock:
        """Return the ``asyncio.Lock`` serialising requests for one session."""
        with self._lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = self._session_locks[session_id] = asyncio.Lock()
            return lock


    @property
    def active_locks(self) -> int:
        """Number of session locks currently held or awaited."""
        with self._lock:
            return len(self._session_locks)


    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions


    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


    def __repr__(self) -> str:
        return f"SessionHistoryStore(sessions={len(self)}, max_turns={self.max_turns})"

"""
In-memory interview sessions keyed by conversation id.

Access to a key goes through ``SessionStore.acquire`` which holds a per-key
asyncio lock for the whole transition. Waiters are served in arrival order, so
a second event for the same chat always sees the state left by the first.
Different keys never contend.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, Hashable, Optional


class SessionState(str, Enum):
    IDENTITY_CHALLENGE = "identity_challenge"
    QUESTION = "question"
    COMPLETED = "completed"


@dataclass
class Session:
    candidate_id: int
    challenge_code: str
    started_at: int  # epoch ms
    last_prompt_at: int  # epoch ms of the most recent prompt sent
    state: SessionState = SessionState.IDENTITY_CHALLENGE
    question_index: int = 0

    @property
    def step(self) -> int:
        """0 while waiting for the selfie, then 1 + index of the question being asked."""
        if self.state == SessionState.IDENTITY_CHALLENGE:
            return 0
        return self.question_index + 1


class SessionSlot:
    """Handle to one key, valid only while its lock is held."""

    def __init__(self, store: "SessionStore", key: Hashable) -> None:
        self._store = store
        self.key = key
        self._open = True

    def _check(self) -> None:
        if not self._open:
            raise RuntimeError(f"Session slot for {self.key!r} used after release")

    @property
    def session(self) -> Optional[Session]:
        self._check()
        return self._store._sessions.get(self.key)

    def put(self, session: Session) -> None:
        self._check()
        self._store._sessions[self.key] = session

    def evict(self) -> None:
        self._check()
        self._store._sessions.pop(self.key, None)

    def close(self) -> None:
        self._open = False


class SessionStore:
    def __init__(self) -> None:
        self._sessions: Dict[Hashable, Session] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._sessions

    def chat_for(self, candidate_id: int) -> Optional[Hashable]:
        """Key of the live session belonging to this candidate, if any."""
        for key, session in self._sessions.items():
            if session.candidate_id == candidate_id:
                return key
        return None

    def peek(self, key: Hashable) -> Optional[Session]:
        """Unlocked read for diagnostics; never use it to drive a transition."""
        return self._sessions.get(key)

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[SessionSlot]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                slot = SessionSlot(self, key)
                try:
                    yield slot
                finally:
                    slot.close()
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

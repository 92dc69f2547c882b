"""Per-session asyncio locks.

Single-process only: create/cleanup for one session are serialized here,
there is no cross-process coordination.
"""

from __future__ import annotations

import asyncio


class SessionLockRegistry:
    """Hands out one ``asyncio.Lock`` per session id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = asyncio.Lock()

    async def get(self, session_id: str) -> asyncio.Lock:
        async with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[session_id] = lock
            return lock

    async def discard(self, session_id: str) -> None:
        """Forget a session's lock once nothing holds it."""
        async with self._guard:
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                del self._locks[session_id]

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

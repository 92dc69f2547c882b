"""IdleSessionReaper - periodic idle-session teardown."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from harbor.config import SessionConfig
    from harbor.managers.session.session import SessionManager

logger = structlog.get_logger()


class IdleSessionReaper:
    """Background loop deleting sessions past their inactivity timeout."""

    def __init__(
        self,
        config: "SessionConfig",
        sessions: "SessionManager",
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._log = logger.bind(service="idle_session_reaper")

        self._running = False
        self._task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start background reap loop."""
        if self._running:
            self._log.warning("idle_reaper.already_running")
            return

        self._running = True
        self._task = asyncio.create_task(
            self._background_loop(),
            name="idle-session-reaper",
        )
        self._log.info(
            "idle_reaper.started",
            interval_seconds=self._config.reap_interval_seconds,
            idle_timeout=self._config.idle_timeout,
        )

    async def stop(self) -> None:
        """Stop background reap loop gracefully."""
        if not self._running:
            return

        self._log.info("idle_reaper.stopping")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._log.info("idle_reaper.stopped")

    async def run_once(self) -> list[str]:
        """Execute one reap cycle.

        Returns:
            IDs of the sessions that were deleted
        """
        async with self._run_lock:
            return await self._sessions.reap_idle()

    async def _background_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._log.exception("idle_reaper.cycle_error", error=str(exc))
            await asyncio.sleep(self._config.reap_interval_seconds)

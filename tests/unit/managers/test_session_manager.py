"""Unit tests for SessionManager and IdleSessionReaper."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from harbor.config import Settings
from harbor.errors import ConflictError, NotFoundError, ValidationError
from harbor.managers.session import IdleSessionReaper, SessionManager
from harbor.utils.datetime import utcnow
from tests.fakes import FakeDriver


class TestSessionLifecycle:
    async def test_create_lays_out_workspace(self, session_manager: SessionManager):
        session = await session_manager.create("s1")

        workspace = Path(session.workspace_path)
        assert (workspace / ".same" / "history.md").exists()
        assert (workspace / ".versions" / "versions.json").exists()
        assert session.container is None

    async def test_generated_id(self, session_manager: SessionManager):
        session = await session_manager.create()
        assert session.id.startswith("sess-")

    async def test_duplicate_conflicts(self, session_manager: SessionManager):
        await session_manager.create("s1")
        with pytest.raises(ConflictError):
            await session_manager.create("s1")

    async def test_invalid_id(self, session_manager: SessionManager):
        with pytest.raises(ValidationError):
            await session_manager.create("../evil")

    async def test_ensure_is_get_or_create(self, session_manager: SessionManager):
        first = await session_manager.ensure("s1")
        second = await session_manager.ensure("s1")

        assert first is second
        assert [s.id for s in await session_manager.list()] == ["s1"]

    async def test_get_unknown(self, session_manager: SessionManager):
        with pytest.raises(NotFoundError):
            await session_manager.get("nope")

    async def test_stores_are_per_session(self, session_manager: SessionManager):
        await session_manager.create("s1")
        await session_manager.create("s2")

        files_1 = await session_manager.files("s1")
        files_2 = await session_manager.files("s2")

        assert files_1.root != files_2.root
        assert files_1 is await session_manager.files("s1")

    async def test_access_touches_session(self, session_manager: SessionManager):
        session = await session_manager.create("s1")
        session.last_active_at = utcnow() - timedelta(hours=1)

        await session_manager.versions("s1")

        assert session.idle_seconds() < 60

    async def test_start_container_attaches_handle(
        self, session_manager: SessionManager, driver: FakeDriver
    ):
        await session_manager.create("s1")

        handle = await session_manager.start_container("s1")

        assert (await session_manager.get("s1")).container is handle
        assert len(driver.create_specs) == 1

    async def test_delete_tears_everything_down(
        self, session_manager: SessionManager, driver: FakeDriver
    ):
        session = await session_manager.create("s1")
        await session_manager.start_container("s1")

        result = await session_manager.delete("s1")

        assert result.success is True
        assert driver.destroy_calls == ["fake-1"]
        assert not Path(session.workspace_path).exists()
        with pytest.raises(NotFoundError):
            await session_manager.get("s1")

    async def test_delete_without_container_removes_workspace(self, session_manager: SessionManager):
        session = await session_manager.create("s1")

        result = await session_manager.delete("s1")

        assert result.success is True
        assert not Path(session.workspace_path).exists()


class TestIdleReaping:
    async def test_reap_idle(self, session_manager: SessionManager, test_settings: Settings):
        stale = await session_manager.create("stale")
        await session_manager.create("fresh")
        stale.last_active_at = utcnow() - timedelta(seconds=test_settings.session.idle_timeout + 5)

        reaped = await session_manager.reap_idle()

        assert reaped == ["stale"]
        assert [s.id for s in await session_manager.list()] == ["fresh"]

    async def test_reap_with_explicit_now(self, session_manager: SessionManager, test_settings: Settings):
        await session_manager.create("s1")
        later = utcnow() + timedelta(seconds=test_settings.session.idle_timeout + 1)

        assert await session_manager.reap_idle(now=later) == ["s1"]

    async def test_reaper_run_once(self, session_manager: SessionManager, test_settings: Settings):
        session = await session_manager.create("s1")
        session.last_active_at = utcnow() - timedelta(days=1)
        reaper = IdleSessionReaper(test_settings.session, session_manager)

        assert await reaper.run_once() == ["s1"]

    async def test_reaper_background_loop(self, session_manager: SessionManager, test_settings: Settings):
        settings = test_settings.model_copy(deep=True)
        settings.session.reap_interval_seconds = 0
        session = await session_manager.create("s1")
        session.last_active_at = utcnow() - timedelta(days=1)
        reaper = IdleSessionReaper(settings.session, session_manager)

        await reaper.start()
        assert reaper.is_running
        for _ in range(50):
            if not await session_manager.list():
                break
            await asyncio.sleep(0.01)
        await reaper.stop()

        assert not reaper.is_running
        assert await session_manager.list() == []

"""Tests for membership state synchronization."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

from membership.db.listener import ChangeListener
from membership.services.reconciliation import ReconciliationSync


class GatedLoader:
    """Loader that can be held open to simulate a slow refresh."""

    def __init__(self) -> None:
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self, user_id: str) -> dict:
        self.calls += 1
        call = self.calls
        await self.gate.wait()
        return {"user_id": user_id, "call": call}


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_start_loads_and_renders_initial_snapshot() -> None:
    async def scenario() -> tuple[ReconciliationSync, AsyncMock]:
        loader = GatedLoader()
        on_update = AsyncMock()
        sync = ReconciliationSync("user-1", loader, on_update, poll_interval=3600)
        await sync.start()
        sync.stop()
        return sync, on_update

    sync, on_update = asyncio.run(scenario())

    on_update.assert_awaited_once_with({"user_id": "user-1", "call": 1})
    assert sync.snapshot == {"user_id": "user-1", "call": 1}
    assert not sync.running


def test_overlapping_triggers_coalesce_into_one_rerun() -> None:
    loader = GatedLoader()
    on_update = AsyncMock()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, on_update, poll_interval=3600)
        await sync.start()

        loader.gate.clear()
        first = asyncio.create_task(sync.refresh("first"))
        await settle()

        assert await sync.refresh("second") is None
        assert await sync.refresh("third") is None
        assert sync.on_focus() is not None

        loader.gate.set()
        await first
        await settle()
        sync.stop()

    asyncio.run(scenario())

    # start + first + ровно один повторный проход
    assert loader.calls == 3
    assert on_update.await_count == 3


def test_focus_triggers_refresh() -> None:
    loader = GatedLoader()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, AsyncMock(), poll_interval=3600)
        await sync.start()
        await sync.on_focus()
        sync.stop()

    asyncio.run(scenario())

    assert loader.calls == 2


def test_notification_for_user_triggers_refresh() -> None:
    listener = ChangeListener("postgresql://unused")
    loader = GatedLoader()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, AsyncMock(), listener=listener, poll_interval=3600)
        await sync.start()
        assert listener.subscription_count == 1

        listener.dispatch("payment_records", "UPDATE", "user-2", {})
        listener.dispatch("packages", "UPDATE", "user-1", {})
        await settle()
        assert loader.calls == 1

        listener.dispatch("user_packages", "INSERT", "user-1", {})
        await settle()
        assert loader.calls == 2

        sync.stop()

    asyncio.run(scenario())


def test_stop_unsubscribes_and_ignores_late_triggers() -> None:
    listener = ChangeListener("postgresql://unused")
    loader = GatedLoader()
    on_update = AsyncMock()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, on_update, listener=listener, poll_interval=3600)
        await sync.start()
        sync.stop()
        sync.stop()

        assert listener.subscription_count == 0
        assert sync.request_refresh("late") is None

        listener.dispatch("payment_records", "UPDATE", "user-1", {})
        await settle()

    asyncio.run(scenario())

    assert loader.calls == 1
    on_update.assert_awaited_once()


def test_result_arriving_after_stop_is_dropped() -> None:
    loader = GatedLoader()
    on_update = AsyncMock()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, on_update, poll_interval=3600)
        await sync.start()

        loader.gate.clear()
        pending = asyncio.create_task(sync.refresh("slow"))
        await settle()
        sync.stop()

        loader.gate.set()
        await pending

    asyncio.run(scenario())

    on_update.assert_awaited_once()


def test_fallback_poll_refreshes_periodically() -> None:
    loader = GatedLoader()

    async def scenario() -> None:
        sync = ReconciliationSync("user-1", loader, AsyncMock(), poll_interval=0.01)
        await sync.start()
        await asyncio.sleep(0.1)
        sync.stop()

    asyncio.run(scenario())

    assert loader.calls >= 3


def test_loader_failure_keeps_previous_snapshot() -> None:
    calls = 0

    async def loader(user_id: str) -> dict:
        nonlocal calls
        calls += 1
        if calls > 1:
            raise ConnectionError("db down")
        return {"user_id": user_id}

    async def scenario() -> ReconciliationSync:
        sync = ReconciliationSync("user-1", loader, AsyncMock(), poll_interval=3600)
        await sync.start()
        assert await sync.refresh("retry") == {"user_id": "user-1"}
        sync.stop()
        return sync

    sync = asyncio.run(scenario())

    assert sync.snapshot == {"user_id": "user-1"}

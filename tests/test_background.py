"""Tests for the cleanup processor."""

import asyncio
from datetime import datetime, timedelta

import pytest

from meshbot.memory.background import CleanupProcessor


class TestCleanupProcessor:
    """Test periodic cleanup."""

    def test_interval_defaults_to_config(self, store):
        processor = CleanupProcessor(store)
        assert processor.interval_seconds == 86400

    def test_run_once(self, store):
        store.save_turn("u1", "a", "b")
        removed = CleanupProcessor(store).run_once()
        assert removed == {"turns": 0, "events": 0}

    @pytest.mark.asyncio
    async def test_loop_runs_cleanup(self, store, monkeypatch):
        calls = []

        def fake_cleanup(cutoff=None):
            calls.append(cutoff)
            return {"turns": 0, "events": 0}

        monkeypatch.setattr(store, "cleanup", fake_cleanup)
        processor = CleanupProcessor(store, interval_seconds=0.01)

        await processor.start()
        await asyncio.sleep(0.05)
        await processor.stop()

        assert len(calls) >= 1
        assert not processor.running

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_loop(self, store, monkeypatch):
        calls = []

        def failing_cleanup(cutoff=None):
            calls.append(cutoff)
            raise RuntimeError("locked")

        monkeypatch.setattr(store, "cleanup", failing_cleanup)
        processor = CleanupProcessor(store, interval_seconds=0.01)

        await processor.start()
        await asyncio.sleep(0.05)
        await processor.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store):
        processor = CleanupProcessor(store)
        await processor.stop()
        assert not processor.running

    def test_removes_expired_turns(self, store):
        store.save_turn("u1", "antiga", "r")
        store._turns["u1"][0].timestamp = datetime.now() - timedelta(days=8)
        store.save_turn("u1", "nova", "r")

        CleanupProcessor(store).run_once()

        assert [t.user_text for t in store.get_history("u1")] == ["nova"]

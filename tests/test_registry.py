"""
Tests for AsyncioTimerRegistry — real loop timers, replacement, persistence.
"""

import asyncio
import json
import shutil
from datetime import datetime, timedelta, timezone

import pytest

from wakealert.core.models import TriggerState
from wakealert.core.registry import AsyncioTimerRegistry, RegistryPersistenceError
from wakealert.core.scheduler import ReminderScheduler


def _soon(seconds: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


class _Recorder:
    def __init__(self):
        self.received: list[dict] = []
        self.fired = asyncio.Event()

    async def __call__(self, payload):
        self.received.append(payload)
        self.fired.set()


# ============================================
# Firing
# ============================================
class TestAsyncioTimers:
    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.05), {"refId": "r1", "name": "Ibuprofen"})
            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            assert recorder.received == [{"refId": "r1", "name": "Ibuprofen"}]
            assert registry.get(1) is None
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_past_instant_fires_immediately(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(-60), {"refId": "r1"})
            await asyncio.wait_for(recorder.fired.wait(), timeout=1)
            assert len(recorder.received) == 1
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_cancel_prevents_fire(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.1), {"refId": "r1"})
            cancelled = registry.cancel(1)
            assert cancelled.state == TriggerState.CANCELLED
            await asyncio.sleep(0.3)
            assert recorder.received == []
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_replacement_supersedes_armed_timer(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.05), {"version": "1"})
            registry.register(1, "r1", _soon(0.15), {"version": "2"})
            await asyncio.sleep(0.4)
            assert recorder.received == [{"version": "2"}]
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_register_from_another_thread(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            await asyncio.to_thread(registry.register, 1, "r1", _soon(0.05), {"refId": "r1"})
            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            assert recorder.received == [{"refId": "r1"}]
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_registry(self):
        calls = []

        async def on_wake(payload):
            calls.append(payload)
            raise RuntimeError("render crashed")

        registry = AsyncioTimerRegistry(on_wake=on_wake)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.02), {"refId": "r1"})
            registry.register(2, "r2", _soon(0.05), {"refId": "r2"})
            await asyncio.sleep(0.3)
            assert [p["refId"] for p in calls] == ["r1", "r2"]
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        registry = AsyncioTimerRegistry()
        await registry.start()
        assert registry.running
        report = await registry.start()
        assert report.restored == 0 and report.dropped == 0
        await registry.stop()
        assert not registry.running


# ============================================
# Persistence
# ============================================
class TestPersistence:
    def test_entries_written_to_disk(self, tmp_path):
        path = tmp_path / "alarms" / "registry.json"
        registry = AsyncioTimerRegistry(path=path)
        registry.register(1, "r1", _soon(3600), {"refId": "r1"})

        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data) == 1
        assert data[0]["key"] == "r1"
        assert data[0]["payload"] == {"refId": "r1"}

        registry.cancel(1)
        assert json.loads(path.read_text(encoding="utf-8")) == []

    @pytest.mark.asyncio
    async def test_restart_restores_future_and_drops_missed(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path)
        first.register(1, "future", _soon(3600), {"refId": "future"})
        first.register(2, "missed", _soon(-3600), {"refId": "missed"})

        recorder = _Recorder()
        second = AsyncioTimerRegistry(path=path, on_wake=recorder)
        report = await second.start(restore=True)
        try:
            assert report.restored == 1
            assert report.dropped == 1
            assert second.get(1).payload == {"refId": "future"}
            assert second.get(2) is None
            await asyncio.sleep(0.05)
            assert recorder.received == []
        finally:
            await second.stop()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [item["key"] for item in data] == ["future"]

    @pytest.mark.asyncio
    async def test_restore_disabled_discards_everything(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path)
        first.register(1, "future", _soon(3600), {"refId": "future"})

        second = AsyncioTimerRegistry(path=path)
        report = await second.start(restore=False)
        try:
            assert report.dropped == 1
            assert second.pending() == []
        finally:
            await second.stop()

    @pytest.mark.asyncio
    async def test_restored_entry_fires(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path)
        first.register(1, "r1", _soon(0.2), {"refId": "r1"})

        recorder = _Recorder()
        second = AsyncioTimerRegistry(path=path, on_wake=recorder)
        await second.start()
        try:
            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            assert recorder.received == [{"refId": "r1"}]
        finally:
            await second.stop()

    @pytest.mark.asyncio
    async def test_cancel_before_start_survives_restore(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path)
        first.register(1, "r1", _soon(3600), {"refId": "r1"})

        second = AsyncioTimerRegistry(path=path)
        second.cancel(1)
        report = await second.start()
        try:
            assert report.restored == 0
            assert second.get(1) is None
        finally:
            await second.stop()

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text("{not json", encoding="utf-8")

        registry = AsyncioTimerRegistry(path=path)
        report = await registry.start()
        try:
            assert report.restored == 0
            assert registry.pending() == []
            registry.register(1, "r1", _soon(3600), {})
            assert len(json.loads(path.read_text(encoding="utf-8"))) == 1
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_inexact_entry_inside_open_window_restored(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path, inexact_window_seconds=60)
        first.register(1, "r1", datetime(2026, 10, 20, 8, 0, 10, tzinfo=timezone.utc), {}, exact=False)

        second = AsyncioTimerRegistry(path=path, inexact_window_seconds=60)
        report = second._restore(datetime(2026, 10, 20, 8, 0, 30, tzinfo=timezone.utc))
        assert report.restored == 1
        assert report.dropped == 0
        assert second.get(1) is not None

    def test_inexact_entry_after_window_dropped(self, tmp_path):
        path = tmp_path / "registry.json"
        first = AsyncioTimerRegistry(path=path, inexact_window_seconds=60)
        first.register(1, "r1", datetime(2026, 10, 20, 8, 0, 10, tzinfo=timezone.utc), {}, exact=False)

        second = AsyncioTimerRegistry(path=path, inexact_window_seconds=60)
        report = second._restore(datetime(2026, 10, 20, 8, 1, 1, tzinfo=timezone.utc))
        assert report.dropped == 1
        assert second.get(1) is None


# ============================================
# Write failures
# ============================================
class TestPersistenceFailures:
    @pytest.mark.asyncio
    async def test_fire_delivers_when_file_cannot_be_written(self, tmp_path):
        directory = tmp_path / "alarms"
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(path=directory / "registry.json", on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.1), {"refId": "r1"})
            shutil.rmtree(directory)

            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            assert recorder.received == [{"refId": "r1"}]
            assert registry.get(1) is None
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_unencodable_payload_leaves_nothing_armed(self, tmp_path):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(path=tmp_path / "registry.json", on_wake=recorder)
        scheduler = ReminderScheduler(registry)
        await registry.start()
        try:
            with pytest.raises(RegistryPersistenceError):
                scheduler.schedule("r1", {"name": "bad \ud800"}, _soon(0.05))
            assert scheduler.get_pending("r1") is None

            await asyncio.sleep(0.3)
            assert recorder.received == []
            assert not (tmp_path / "registry.json").exists()
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_registration(self, tmp_path):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(path=tmp_path / "registry.json", on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.1), {"version": "1"})
            with pytest.raises(RegistryPersistenceError):
                registry.register(1, "r1", _soon(0.05), {"version": "bad \ud800"})
            assert registry.get(1).payload == {"version": "1"}

            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            assert recorder.received == [{"version": "1"}]
        finally:
            await registry.stop()

    def test_failed_cancel_keeps_entry(self, tmp_path):
        directory = tmp_path / "alarms"
        registry = AsyncioTimerRegistry(path=directory / "registry.json")
        registry.register(1, "r1", _soon(3600), {"refId": "r1"})
        shutil.rmtree(directory)

        with pytest.raises(RegistryPersistenceError):
            registry.cancel(1)
        assert registry.get(1).state == TriggerState.SCHEDULED


# ============================================
# Cross-thread races
# ============================================
class TestCrossThread:
    @pytest.mark.asyncio
    async def test_cancel_from_another_thread_before_fire(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            registry.register(1, "r1", _soon(0.2), {"refId": "r1"})
            removed = await asyncio.to_thread(registry.cancel, 1)
            assert removed is not None

            await asyncio.sleep(0.4)
            assert recorder.received == []
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_cancelled_handle_firing_late_delivers_nothing(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            armed = registry.register(1, "r1", _soon(3600), {"refId": "r1"})
            await asyncio.to_thread(registry.cancel, 1)

            # The handle armed for the cancelled registration runs anyway
            registry._fire(1, armed.generation)
            await asyncio.sleep(0.05)
            assert recorder.received == []
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_last_write_across_threads_wins(self):
        recorder = _Recorder()
        registry = AsyncioTimerRegistry(on_wake=recorder)
        await registry.start()
        try:
            stale = registry.register(1, "r1", _soon(3600), {"version": "1"})
            await asyncio.to_thread(registry.cancel, 1)
            await asyncio.to_thread(registry.register, 1, "r1", _soon(0.05), {"version": "2"})

            registry._fire(1, stale.generation)
            await asyncio.wait_for(recorder.fired.wait(), timeout=2)
            await asyncio.sleep(0.05)
            assert recorder.received == [{"version": "2"}]
        finally:
            await registry.stop()

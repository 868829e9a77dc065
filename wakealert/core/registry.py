"""
WakeAlert — Wake-Timer Registry.
The process-wide table of armed wake timers, keyed by dispatch token.

One entry per token: registering a token that is already armed replaces the
previous entry, cancelling removes it, firing consumes it. Each mutation bumps
a per-token generation so a timer handle that was armed for an older
registration can never deliver once it has been superseded or cancelled.

Two implementations:
- InMemoryTimerRegistry: nothing fires on its own, call ``fire_due(now)``.
- AsyncioTimerRegistry: one ``loop.call_later`` handle per pending token,
  entries persisted to JSON so they survive process restarts.
"""

import asyncio
import json
import logging
import math
import threading
from abc import ABC
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Mapping

from wakealert.core.models import (
    ReminderPayload,
    ScheduledTrigger,
    TriggerState,
    copy_payload,
    to_utc,
)

logger = logging.getLogger(__name__)

# Receives exactly the payload attached at registration time
WakeCallback = Callable[[ReminderPayload], Awaitable[None]]


class RegistryPersistenceError(Exception):
    """The registry file could not be written. In-memory state is left unchanged."""


@dataclass
class RestoreReport:
    restored: int = 0
    dropped: int = 0


class TimerRegistry(ABC):
    """Base registry: entry bookkeeping, generations and wake delivery."""

    def __init__(
        self,
        exact_permitted: bool = True,
        inexact_window_seconds: int = 60,
        on_wake: WakeCallback | None = None,
    ):
        self.exact_permitted = exact_permitted
        self.inexact_window_seconds = inexact_window_seconds
        self._on_wake = on_wake
        self._entries: dict[int, ScheduledTrigger] = {}
        self._generations: dict[int, int] = {}
        self._lock = threading.RLock()

    def set_wake_callback(self, on_wake: WakeCallback) -> None:
        self._on_wake = on_wake

    def can_schedule_exact(self) -> bool:
        return self.exact_permitted

    # ============================================
    # Mutation
    # ============================================

    def register(
        self,
        token: int,
        key: str,
        fire_at: datetime,
        payload: Mapping[str, str],
        exact: bool = True,
    ) -> ScheduledTrigger:
        """
        Arm a wake timer for ``token``, replacing any existing one.

        Raises:
            RegistryPersistenceError: If the entry cannot be saved (nothing is armed)
        """
        with self._lock:
            previous = self._entries.get(token)
            if previous is not None and previous.key != key:
                logger.warning(
                    f"Registry: token {token} reassigned from '{previous.key}' to '{key}'"
                )
            trigger = ScheduledTrigger(
                key=key,
                token=token,
                fire_at=to_utc(fire_at),
                payload=copy_payload(payload),
                exact=exact,
                generation=self._generations.get(token, 0) + 1,
            )
            self._persist({**self._entries, token: trigger})

            self._generations[token] = trigger.generation
            self._entries[token] = trigger
            self._on_registered(trigger, previous)
        return trigger

    def cancel(self, token: int) -> ScheduledTrigger | None:
        """
        Disarm ``token``. Returns the removed entry, or None if nothing was armed.

        Raises:
            RegistryPersistenceError: If the removal cannot be saved (the entry stays armed)
        """
        with self._lock:
            removed = self._entries.get(token)
            if removed is None:
                return None
            self._persist({t: e for t, e in self._entries.items() if t != token})

            self._generations[token] = self._generations.get(token, 0) + 1
            del self._entries[token]
            removed.state = TriggerState.CANCELLED
            self._on_cancelled(removed)
        return removed

    def get(self, token: int) -> ScheduledTrigger | None:
        with self._lock:
            return self._entries.get(token)

    def pending(self) -> list[ScheduledTrigger]:
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda t: t.fire_at)

    def wake_time(self, trigger: ScheduledTrigger) -> datetime:
        """
        When the timer actually goes off.
        Inexact timers are deferred to the next batching-window boundary.
        """
        if trigger.exact or self.inexact_window_seconds <= 0:
            return trigger.fire_at
        window = self.inexact_window_seconds
        boundary = math.ceil(trigger.fire_at.timestamp() / window) * window
        return datetime.fromtimestamp(boundary, tz=timezone.utc)

    # ============================================
    # Firing
    # ============================================

    def _consume(self, token: int, generation: int) -> ScheduledTrigger | None:
        """Remove the entry if it is still the registration this timer was armed for."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None or entry.generation != generation:
                return None
            del self._entries[token]
            entry.state = TriggerState.FIRED
            # Delivery goes ahead even if the file still lists the entry
            self._save_or_log(f"'{entry.key}' fired")
        return entry

    async def _deliver(self, trigger: ScheduledTrigger) -> None:
        if self._on_wake is None:
            logger.warning(f"Registry: '{trigger.key}' fired with no wake callback attached")
            return
        logger.info(f"Registry: wake timer fired for '{trigger.key}'")
        await self._on_wake(dict(trigger.payload))

    # ============================================
    # Hooks
    # ============================================

    def _on_registered(self, trigger: ScheduledTrigger, previous: ScheduledTrigger | None) -> None:
        pass

    def _on_cancelled(self, trigger: ScheduledTrigger) -> None:
        pass

    def _persist(self, entries: Mapping[int, ScheduledTrigger]) -> None:
        pass

    def _save_or_log(self, context: str) -> None:
        try:
            self._persist(self._entries)
        except RegistryPersistenceError as e:
            logger.error(f"Registry: {context}, registry file not updated: {e}")


class InMemoryTimerRegistry(TimerRegistry):
    """Registry with a manual clock. Nothing fires until ``fire_due`` is called."""

    async def fire_due(self, now: datetime | None = None) -> list[ScheduledTrigger]:
        """Fire every entry whose wake time has been reached, oldest first."""
        now = to_utc(now) if now else datetime.now(timezone.utc)
        fired = []
        for trigger in self.pending():
            if self.wake_time(trigger) > now:
                continue
            consumed = self._consume(trigger.token, trigger.generation)
            if consumed is None:
                continue
            fired.append(consumed)
            await self._deliver(consumed)
        return fired


class AsyncioTimerRegistry(TimerRegistry):
    """
    Registry backed by the running asyncio loop.

    Features:
    - One TimerHandle per pending token, no polling
    - register/cancel are safe to call from any thread
    - Entries persist in JSON (survive restarts)
    """

    def __init__(
        self,
        path: Path | str | None = None,
        exact_permitted: bool = True,
        inexact_window_seconds: int = 60,
        on_wake: WakeCallback | None = None,
    ):
        super().__init__(exact_permitted, inexact_window_seconds, on_wake)
        self.path = Path(path) if path else None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handles: dict[int, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._loaded: set[int] = set()  # tokens read from disk, not touched since
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._load()

    @property
    def running(self) -> bool:
        return self._loop is not None

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self, restore: bool = True) -> RestoreReport:
        """
        Attach to the running loop and arm every pending entry.
        With ``restore``, persisted entries are kept, except those whose fire
        time passed while the process was down: they are dropped, not
        redelivered. Without it, every persisted entry is discarded.
        """
        report = RestoreReport()
        if self._loop is not None:
            return report
        self._loop = asyncio.get_running_loop()

        report = self._restore(datetime.now(timezone.utc), keep=restore)

        for trigger in self.pending():
            self._arm(trigger.token, trigger.generation)

        logger.info(
            f"Registry started: {len(self._entries)} armed "
            f"(restored={report.restored}, dropped={report.dropped})"
        )
        return report

    async def stop(self) -> None:
        """Disarm timer handles. Entries stay persisted for the next start."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._loop = None
        logger.info("Registry stopped")

    # ============================================
    # Timer handles
    # ============================================

    def _on_registered(self, trigger: ScheduledTrigger, previous: ScheduledTrigger | None) -> None:
        self._call_in_loop(self._arm, trigger.token, trigger.generation)

    def _on_cancelled(self, trigger: ScheduledTrigger) -> None:
        self._call_in_loop(self._disarm, trigger.token)

    def _call_in_loop(self, fn, *args) -> None:
        loop = self._loop
        if loop is None:
            return  # armed on start()
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            fn(*args)
        else:
            loop.call_soon_threadsafe(fn, *args)

    def _arm(self, token: int, generation: int) -> None:
        with self._lock:
            trigger = self._entries.get(token)
            if trigger is None or trigger.generation != generation or self._loop is None:
                return
            self._disarm(token)
            delay = (self.wake_time(trigger) - datetime.now(timezone.utc)).total_seconds()
            self._handles[token] = self._loop.call_later(max(0.0, delay), self._fire, token, generation)

    def _disarm(self, token: int) -> None:
        handle = self._handles.pop(token, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, token: int, generation: int) -> None:
        trigger = self._consume(token, generation)
        if trigger is None:
            return
        self._handles.pop(token, None)
        task = self._loop.create_task(self._deliver(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._on_delivery_done)

    def _on_delivery_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Registry: wake delivery failed: {task.exception()!r}")

    # ============================================
    # Persistence
    # ============================================

    def _persist(self, entries: Mapping[int, ScheduledTrigger]) -> None:
        """
        Persist entries to JSON file (write temp, then rename).
        Encoding happens before anything touches the disk.

        Raises:
            RegistryPersistenceError: If the entries cannot be encoded or written
        """
        if not self.path:
            return
        try:
            data = [t.to_dict() for t in entries.values()]
            encoded = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
            temp_path = self.path.with_suffix(".tmp")
            temp_path.write_bytes(encoded)
            temp_path.replace(self.path)
        except (OSError, UnicodeError, TypeError, ValueError) as e:
            raise RegistryPersistenceError(f"Cannot save registry {self.path}: {e}") from e
        logger.debug(f"Registry: saved {len(data)} entries")

    def _load(self) -> None:
        """Load entries from persistent storage."""
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            triggers = [ScheduledTrigger.from_dict(item) for item in data]
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Registry: failed to load {self.path}: {e}")
            return
        for trigger in triggers:
            trigger.state = TriggerState.SCHEDULED
            self._entries[trigger.token] = trigger
            self._generations[trigger.token] = trigger.generation
            self._loaded.add(trigger.token)
        logger.info(f"Registry: loaded {len(triggers)} entries from {self.path}")

    def register(
        self,
        token: int,
        key: str,
        fire_at: datetime,
        payload: Mapping[str, str],
        exact: bool = True,
    ) -> ScheduledTrigger:
        with self._lock:
            trigger = super().register(token, key, fire_at, payload, exact)
            self._loaded.discard(token)
        return trigger

    def cancel(self, token: int) -> ScheduledTrigger | None:
        with self._lock:
            removed = super().cancel(token)
            self._loaded.discard(token)
        return removed

    def _restore(self, now: datetime, keep: bool = True) -> RestoreReport:
        report = RestoreReport()
        with self._lock:
            for token in list(self._loaded):
                trigger = self._entries.get(token)
                if trigger is None:
                    continue
                if keep and self.wake_time(trigger) >= now:
                    report.restored += 1
                    continue
                del self._entries[token]
                report.dropped += 1
                reason = "missed" if keep else "restore disabled"
                logger.info(f"Registry: dropping persisted trigger '{trigger.key}' ({reason})")
            self._loaded.clear()
            if report.dropped:
                self._save_or_log("dropped persisted triggers")
        return report

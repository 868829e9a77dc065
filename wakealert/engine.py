"""
WakeAlert — Reminder Engine.
Builds the scheduler, registry, dispatcher and presenter and wires them together.

Flow:
  engine.schedule({...refId, timestamp...})
    → ReminderScheduler.schedule(key, payload, fire_at)
      → TimerRegistry.register(token, ...)           (one entry per key)
        → (timer fires)
          → TriggerDispatcher.on_wake(payload)       (alert + full-screen request)
            → Presenter.present(request)             (over the lock screen)
"""

import logging
from typing import Any, Mapping

from wakealert.core.config import Settings, settings as default_settings
from wakealert.core.events import EventBus, EventType, event_bus
from wakealert.core.models import ReminderRequest, ScheduleStatus
from wakealert.core.registry import AsyncioTimerRegistry, RestoreReport, TimerRegistry
from wakealert.core.scheduler import ReminderScheduler
from wakealert.delivery.dispatcher import TriggerDispatcher
from wakealert.delivery.handlers import register_delivery_handlers
from wakealert.delivery.notification_center import NotificationCenter, ensure_alert_channel
from wakealert.delivery.presenter import Presenter
from wakealert.infra.metrics import TRIGGERS_DROPPED, TRIGGERS_RESTORED

logger = logging.getLogger(__name__)


def build_registry(settings: Settings) -> AsyncioTimerRegistry:
    return AsyncioTimerRegistry(
        path=settings.REGISTRY_FILE if settings.persists_registry else None,
        exact_permitted=settings.EXACT_ALARMS_PERMITTED,
        inexact_window_seconds=settings.INEXACT_WINDOW_SECONDS,
    )


class ReminderEngine:
    """Application-facing entry point: schedule / cancel plus startup and shutdown."""

    def __init__(
        self,
        registry: TimerRegistry | None = None,
        center: NotificationCenter | None = None,
        presenter: Presenter | None = None,
        bus: EventBus | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or default_settings
        self.bus = bus or event_bus
        self.registry = registry or build_registry(self.settings)
        self.center = center or NotificationCenter()
        self.presenter = presenter or Presenter(bus=self.bus)
        self.scheduler = ReminderScheduler(self.registry)
        self.dispatcher = TriggerDispatcher(self.center, bus=self.bus, settings=self.settings)

        self.registry.set_wake_callback(self.dispatcher.on_wake)
        self._registrations = register_delivery_handlers(self.presenter, self.center, bus=self.bus)

    def schedule(self, details: ReminderRequest | Mapping[str, Any]) -> ScheduleStatus:
        """
        Schedule a reminder from the application-layer call
        ``{kind, refId, title, body, ..., scheduledFor, timestamp}``.

        Raises:
            pydantic.ValidationError: If required fields are missing or mistyped
            ReminderKeyError: If ``refId`` is empty
            RegistryPersistenceError: If the registration cannot be saved
        """
        if isinstance(details, ReminderRequest):
            request = details
        else:
            request = ReminderRequest.model_validate(details)
        return self.scheduler.schedule_request(request)

    def cancel(self, ref_id: str) -> bool:
        return self.scheduler.cancel(ref_id)

    async def start(self) -> RestoreReport:
        """Channel setup, then arm the registry (restoring persisted timers if enabled)."""
        ensure_alert_channel(self.center, self.settings)

        report = RestoreReport()
        if isinstance(self.registry, AsyncioTimerRegistry):
            report = await self.registry.start(restore=self.settings.RESTORE_ON_STARTUP)
            TRIGGERS_RESTORED.inc(report.restored)
            TRIGGERS_DROPPED.inc(report.dropped)

        await self.bus.emit_simple(
            EventType.SYSTEM_STARTUP,
            source="engine",
            data={"restored": report.restored, "dropped": report.dropped},
        )
        logger.info(f"ReminderEngine started ({len(self.scheduler.list_pending())} pending)")
        return report

    async def stop(self) -> None:
        if isinstance(self.registry, AsyncioTimerRegistry):
            await self.registry.stop()
        await self.bus.emit_simple(EventType.SYSTEM_SHUTDOWN, source="engine")
        for event_type, handler in self._registrations:
            self.bus.off(event_type, handler)
        logger.info("ReminderEngine stopped")

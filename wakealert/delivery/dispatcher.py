"""
WakeAlert — Trigger Dispatcher.
Turns a fired wake bundle into a posted alert and a full-screen presentation request.

Call Path:
  TimerRegistry fires
    → TriggerDispatcher.on_wake(bundle)
      → build_alert(bundle) → (Alert, PresentationRequest)
        → notification_center.post(alert)
        → EventBus.emit("presentation.requested", request)
          → on_presentation_requested(event) → Presenter.present(request)
"""

import logging
from typing import Mapping

from wakealert.core.config import Settings, settings as default_settings
from wakealert.core.events import Event, EventBus, EventType, event_bus
from wakealert.core.models import copy_payload
from wakealert.delivery.notification_center import (
    Alert,
    AlertAction,
    NotificationCenter,
    PresentationRequest,
)
from wakealert.infra.metrics import ALERTS_POSTED, TRIGGERS_FIRED

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Reminder"
DEFAULT_BODY = "It's time!"


def build_alert(
    payload: Mapping[str, str],
    channel_id: str = "medications",
    component: str = "AlarmScreen",
) -> tuple[Alert, PresentationRequest]:
    """
    Compose the alert for a fired trigger. Pure: no I/O, no hidden state.

    The presentation request carries the whole payload, not just title/body,
    so the reminder screen never has to look anything up. The content action
    is a plain "open app" launch with no payload.
    """
    carried = copy_payload(payload)
    request = PresentationRequest(component=component, payload=carried)
    alert = Alert(
        channel_id=channel_id,
        ref_id=carried.get("refId"),
        title=carried.get("title") or DEFAULT_TITLE,
        body=carried.get("body") or DEFAULT_BODY,
        full_screen_intent=request,
        content_action=AlertAction(),
    )
    return alert, request


class TriggerDispatcher:
    """
    Wake callback for the registry.
    Each call handles exactly one fire event; the registry entry is already
    consumed by the time it runs.
    """

    def __init__(
        self,
        center: NotificationCenter,
        bus: EventBus | None = None,
        settings: Settings | None = None,
    ):
        self.center = center
        self.bus = bus or event_bus
        self.settings = settings or default_settings

    async def on_wake(self, bundle: Mapping[str, str]) -> tuple[Alert, PresentationRequest]:
        payload = copy_payload(bundle)
        ref_id = payload.get("refId", "")
        TRIGGERS_FIRED.labels(kind=payload.get("kind") or "unknown").inc()
        logger.info(f"Dispatcher: trigger fired for '{ref_id}'")

        await self.bus.emit(Event(
            type=EventType.REMINDER_FIRED,
            source="dispatcher",
            data={"ref_id": ref_id, "payload": payload},
        ))

        alert, request = build_alert(
            payload,
            channel_id=self.settings.ALERT_CHANNEL_ID,
            component=self.settings.PRESENTATION_COMPONENT,
        )

        await self.center.post(alert)
        ALERTS_POSTED.labels(channel=alert.channel_id).inc()
        await self.bus.emit(Event(
            type=EventType.ALERT_POSTED,
            source="dispatcher",
            data={"alert_id": str(alert.id), "ref_id": ref_id},
        ))

        await self.bus.emit(Event(
            type=EventType.PRESENTATION_REQUESTED,
            source="dispatcher",
            data={"ref_id": ref_id, "request": request},
        ))
        return alert, request

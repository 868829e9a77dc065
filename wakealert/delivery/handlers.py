"""
WakeAlert — Delivery Event Handlers.
Connects dispatcher events to the presenter and the notification center.

Call Path:
  TriggerDispatcher.on_wake()
    → EventBus.emit("presentation.requested")
      → on_presentation_requested(event) → presenter.present(request)
  Presenter.dismiss()
    → EventBus.emit("presentation.dismissed")
      → on_presentation_dismissed(event) → notification_center.dismiss_for(ref_id)
"""

import logging

from wakealert.core.events import Event, EventBus, EventHandler, EventType, event_bus
from wakealert.delivery.notification_center import NotificationCenter, PresentationRequest
from wakealert.delivery.presenter import Presenter

logger = logging.getLogger(__name__)


def make_presentation_handler(presenter: Presenter) -> EventHandler:
    async def on_presentation_requested(event: Event):
        """Hand the full-screen request to the presenter."""
        request = event.data.get("request")
        if not isinstance(request, PresentationRequest):
            logger.error(f"Presentation requested without a request (ref_id={event.data.get('ref_id')})")
            return
        await presenter.present(request)

    return on_presentation_requested


def make_dismissal_handler(center: NotificationCenter) -> EventHandler:
    async def on_presentation_dismissed(event: Event):
        """Closing the reminder screen also clears its alert."""
        ref_id = event.data.get("ref_id", "")
        count = await center.dismiss_for(ref_id)
        logger.debug(f"Presentation dismissed: {ref_id} ({count} alerts cleared)")

    return on_presentation_dismissed


def register_delivery_handlers(
    presenter: Presenter,
    center: NotificationCenter,
    bus: EventBus | None = None,
) -> list[tuple[EventType, EventHandler]]:
    """
    Register the delivery handlers on the EventBus.
    Returns the (event, handler) pairs so the caller can unregister them.
    """
    bus = bus or event_bus
    registrations = [
        (EventType.PRESENTATION_REQUESTED, make_presentation_handler(presenter)),
        (EventType.PRESENTATION_DISMISSED, make_dismissal_handler(center)),
    ]
    for event_type, handler in registrations:
        bus.on(event_type, handler)

    logger.info("Delivery handlers registered on EventBus")
    return registrations

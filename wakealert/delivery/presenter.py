"""
WakeAlert — Reminder Presenter.
Brings a fired reminder to the foreground over the lock screen.

Everything shown comes from the payload carried by the presentation request;
the presenter never reads application storage, so it works even when the
rest of the application is not running.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable

from wakealert.core.events import Event, EventBus, EventType, event_bus
from wakealert.core.models import TriggerState
from wakealert.delivery.notification_center import PresentationRequest
from wakealert.infra.metrics import PRESENTATIONS

logger = logging.getLogger(__name__)

PLACEHOLDER = "Not specified"

# Fields a kind cannot be rendered properly without
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "medication": ("name", "dosage"),
    "appointment": ("time", "location"),
}

# (payload field, label) in display order
DETAIL_FIELDS: dict[str, tuple[tuple[str, str], ...]] = {
    "medication": (
        ("name", "Medication"),
        ("dosage", "Dosage"),
        ("instructions", "Instructions"),
    ),
    "appointment": (
        ("doctorName", "Doctor"),
        ("location", "Location"),
        ("time", "Time"),
        ("notes", "Notes"),
    ),
}

# UI entry point: (component name, initial props)
RenderTarget = Callable[[str, dict[str, str]], None]


@dataclass
class WindowFlags:
    show_when_locked: bool = False
    dismiss_keyguard: bool = False
    keep_screen_on: bool = False
    turn_screen_on: bool = False

    @classmethod
    def full_screen(cls) -> "WindowFlags":
        return cls(
            show_when_locked=True,
            dismiss_keyguard=True,
            keep_screen_on=True,
            turn_screen_on=True,
        )


class ScreenController:
    """Display state as seen by the presenter. The default has no hardware behind it."""

    def __init__(self):
        self.flags = WindowFlags()
        self.screen_on = False
        self.locked = True

    def apply(self, flags: WindowFlags) -> None:
        self.flags = flags
        if flags.turn_screen_on:
            self.screen_on = True
        if flags.dismiss_keyguard:
            self.locked = False

    def release(self) -> None:
        self.flags = replace(self.flags, keep_screen_on=False)


@dataclass
class ReminderView:
    kind: str
    ref_id: str
    headline: str
    details: list[tuple[str, str]] = field(default_factory=list)
    scheduled_for: str = ""
    degraded: bool = False
    missing_fields: list[str] = field(default_factory=list)


@dataclass
class Presentation:
    ref_id: str
    component: str
    initial_props: dict[str, str]
    view: ReminderView
    state: TriggerState = TriggerState.PRESENTING


def build_view(payload: dict[str, str]) -> ReminderView:
    """
    Render model for a payload. Absent fields are listed in ``missing_fields``
    and shown as a placeholder; nothing here raises on missing data.
    """
    kind = (payload.get("kind") or "").strip().lower()
    ref_id = payload.get("refId") or ""

    required = ("refId",) + REQUIRED_FIELDS.get(kind, ())
    missing = [name for name in required if not payload.get(name)]

    details = [
        (label, payload.get(name) or PLACEHOLDER)
        for name, label in DETAIL_FIELDS.get(kind, ())
    ]
    if not details and payload.get("body"):
        details.append(("Details", payload["body"]))

    headline = payload.get("title") or payload.get("name") or "Reminder"

    return ReminderView(
        kind=kind or "unknown",
        ref_id=ref_id,
        headline=headline,
        details=details,
        scheduled_for=payload.get("scheduledFor") or payload.get("time") or "",
        degraded=bool(missing),
        missing_fields=missing,
    )


class Presenter:
    """
    Full-screen reminder presentation.
    Wakes the display, shows over the keyguard, keeps the screen on until
    dismissed, and hands the payload to the UI as initial props.
    """

    def __init__(
        self,
        screen: ScreenController | None = None,
        render: RenderTarget | None = None,
        bus: EventBus | None = None,
    ):
        self.screen = screen or ScreenController()
        self.render = render
        self.bus = bus or event_bus
        self._active: dict[str, Presentation] = {}

    async def present(self, request: PresentationRequest) -> Presentation:
        props = dict(request.payload)
        view = build_view(props)

        self.screen.apply(WindowFlags.full_screen())

        if view.degraded:
            logger.warning(f"Presenter: '{view.ref_id}' missing fields {view.missing_fields}, rendering degraded view")

        if self.render is not None:
            try:
                self.render(request.component, props)
            except Exception as e:
                logger.error(f"Presenter: render of '{request.component}' failed: {e}")

        presentation = Presentation(
            ref_id=view.ref_id,
            component=request.component,
            initial_props=props,
            view=view,
        )
        self._active[view.ref_id] = presentation
        PRESENTATIONS.labels(degraded=str(view.degraded).lower()).inc()
        logger.info(f"Presenter: presenting '{view.ref_id}' ({view.kind})")

        await self.bus.emit(Event(
            type=EventType.PRESENTATION_STARTED,
            source="presenter",
            data={"ref_id": view.ref_id, "degraded": view.degraded},
        ))
        return presentation

    async def dismiss(self, ref_id: str) -> bool:
        """User closed the reminder screen."""
        presentation = self._active.pop(ref_id, None)
        if presentation is None:
            return False
        presentation.state = TriggerState.DISMISSED
        if not self._active:
            self.screen.release()
        await self.bus.emit(Event(
            type=EventType.PRESENTATION_DISMISSED,
            source="presenter",
            data={"ref_id": ref_id},
        ))
        return True

    def get_active(self, ref_id: str) -> Presentation | None:
        return self._active.get(ref_id)

    def list_active(self) -> list[Presentation]:
        return list(self._active.values())

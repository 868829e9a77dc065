"""
WakeAlert — Notification Center.
The alert surface: channels, posted alerts, and the one-time channel setup.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from wakealert.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class Importance(str, Enum):
    LOW = "low"
    DEFAULT = "default"
    HIGH = "high"


class Visibility(str, Enum):
    PUBLIC = "public"  # full content shown on the lock screen
    PRIVATE = "private"
    SECRET = "secret"


class AlertPriority(str, Enum):
    DEFAULT = "default"
    HIGH = "high"


class AlertCategory(str, Enum):
    ALARM = "alarm"
    REMINDER = "reminder"


class AlertChannel(BaseModel):
    id: str
    name: str
    description: str = ""
    importance: Importance = Importance.DEFAULT
    bypass_dnd: bool = False
    lockscreen_visibility: Visibility = Visibility.PRIVATE


class PresentationRequest(BaseModel):
    """Full-screen intent: opens the reminder screen with the complete payload."""
    component: str = "AlarmScreen"
    payload: dict[str, str] = Field(default_factory=dict)


class AlertAction(BaseModel):
    """Secondary tap action. A generic foreground launch, it carries no payload."""
    kind: str = "open_app"
    priority: AlertPriority = AlertPriority.DEFAULT
    payload: dict[str, str] = Field(default_factory=dict)


class Alert(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    channel_id: str
    ref_id: str | None = None
    title: str
    body: str
    priority: AlertPriority = AlertPriority.HIGH
    category: AlertCategory = AlertCategory.ALARM
    visibility: Visibility = Visibility.PUBLIC
    auto_cancel: bool = True
    full_screen_intent: PresentationRequest | None = None
    content_action: AlertAction = Field(default_factory=AlertAction)
    posted_at: datetime | None = None
    dismissed: bool = False


class NotificationCenter:
    """
    In-process alert surface.
    Holds registered channels and every posted alert until dismissed or cleared.
    """

    def __init__(self):
        self._channels: dict[str, AlertChannel] = {}
        self._alerts: list[Alert] = []

    # ============================================
    # Channels
    # ============================================

    def create_channel(self, channel: AlertChannel) -> AlertChannel:
        """Create or update a channel. Idempotent on the channel id."""
        self._channels[channel.id] = channel
        logger.info(f"NotificationCenter: channel '{channel.id}' ready (importance={channel.importance.value})")
        return channel

    def get_channel(self, channel_id: str) -> AlertChannel | None:
        return self._channels.get(channel_id)

    # ============================================
    # Alerts
    # ============================================

    async def post(self, alert: Alert) -> Alert:
        """Show an alert. An unknown channel is logged, the alert is still posted."""
        if alert.channel_id not in self._channels:
            logger.warning(f"NotificationCenter: posting to unknown channel '{alert.channel_id}'")

        alert.posted_at = datetime.now(timezone.utc)
        self._alerts.append(alert)

        logger.info("Alert posted", extra={"props": {
            "alert_id": str(alert.id), "channel": alert.channel_id,
            "ref_id": alert.ref_id, "title_preview": alert.title[:100],
        }})
        return alert

    async def get_active(self) -> list[Alert]:
        """Alerts not yet dismissed, newest first."""
        active = [a for a in self._alerts if not a.dismissed]
        return sorted(active, key=lambda a: a.posted_at, reverse=True)

    async def get(self, alert_id: UUID) -> Alert | None:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    async def dismiss(self, alert_id: UUID) -> bool:
        """Dismiss one alert (user swipe or tap with auto-cancel)."""
        alert = await self.get(alert_id)
        if alert is None or alert.dismissed:
            return False
        alert.dismissed = True
        return True

    async def dismiss_for(self, ref_id: str) -> int:
        """Dismiss every active alert for a reminder."""
        count = 0
        for alert in self._alerts:
            if alert.ref_id == ref_id and not alert.dismissed:
                alert.dismissed = True
                count += 1
        return count

    async def clear(self):
        self._alerts = []


def ensure_alert_channel(center: NotificationCenter, settings: Settings | None = None) -> AlertChannel:
    """
    One-time setup of the reminder channel: high importance, bypasses
    do-not-disturb, full content visible on the lock screen.
    """
    settings = settings or default_settings
    existing = center.get_channel(settings.ALERT_CHANNEL_ID)
    if existing is not None:
        return existing
    return center.create_channel(AlertChannel(
        id=settings.ALERT_CHANNEL_ID,
        name=settings.ALERT_CHANNEL_NAME,
        description=settings.ALERT_CHANNEL_DESCRIPTION,
        importance=Importance.HIGH,
        bypass_dnd=True,
        lockscreen_visibility=Visibility.PUBLIC,
    ))


# Singleton
notification_center = NotificationCenter()

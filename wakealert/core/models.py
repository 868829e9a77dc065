"""
WakeAlert — Reminder Models.
Reminder keys, payloads, scheduled triggers and the application-facing request.

A payload is a plain ordered ``dict[str, str]``: the scheduler never looks
inside it, it is attached to the wake registration as-is and handed back
verbatim to the dispatcher when the timer fires.
"""

import hashlib
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

ReminderKey = str
ReminderPayload = dict[str, str]


class ReminderKeyError(ValueError):
    """Raised when a reminder is scheduled or cancelled without an identity."""


class TriggerState(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    FIRED = "fired"
    PRESENTING = "presenting"
    DISMISSED = "dismissed"


class ScheduleStatus(str, Enum):
    EXACT = "exact"
    INEXACT = "inexact"  # exact timing denied, best-effort wake


def validate_key(key: ReminderKey) -> ReminderKey:
    if not isinstance(key, str) or not key:
        raise ReminderKeyError("Reminder key cannot be empty")
    return key


def dispatch_token(key: ReminderKey) -> int:
    """
    Derive the registry token for a reminder key.

    Unsigned 64-bit, taken from a blake2b digest of the UTF-8 key, so the
    same key maps to the same token in every process and interpreter run.
    """
    validate_key(key)
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def copy_payload(payload: Mapping[str, Any]) -> ReminderPayload:
    """Snapshot a payload, keeping key order and coercing values to strings."""
    return {str(k): v if isinstance(v, str) else str(v) for k, v in payload.items()}


def to_utc(instant: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


@dataclass
class ScheduledTrigger:
    """One outstanding wake registration for a reminder key."""

    key: str
    token: int
    fire_at: datetime
    payload: ReminderPayload = field(default_factory=dict)
    exact: bool = True
    state: TriggerState = TriggerState.SCHEDULED
    generation: int = 0
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["fire_at"] = self.fire_at.isoformat()
        data["registered_at"] = self.registered_at.isoformat()
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledTrigger":
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        filtered["fire_at"] = to_utc(datetime.fromisoformat(filtered["fire_at"]))
        if "registered_at" in filtered:
            filtered["registered_at"] = to_utc(datetime.fromisoformat(filtered["registered_at"]))
        if "state" in filtered:
            filtered["state"] = TriggerState(filtered["state"])
        filtered["payload"] = copy_payload(filtered.get("payload") or {})
        return cls(**filtered)


class ReminderRequest(BaseModel):
    """
    Scheduling call as sent by the application layer.

    ``refId`` is the reminder key and ``timestamp`` the absolute fire instant
    in epoch seconds. Any additional attributes are carried in the payload.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    kind: str
    ref_id: str = Field(alias="refId")
    title: str | None = None
    body: str | None = None
    name: str | None = None
    dosage: str | None = None
    instructions: str | None = None
    time: str | None = None
    location: str | None = None
    appointment_id: str | None = Field(default=None, alias="appointmentId")
    doctor_name: str | None = Field(default=None, alias="doctorName")
    notes: str | None = None
    scheduled_for: str | None = Field(default=None, alias="scheduledFor")
    timestamp: float

    @property
    def key(self) -> ReminderKey:
        return self.ref_id

    @property
    def fire_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_payload(self) -> ReminderPayload:
        """Payload carried across the wake boundary (everything but the fire instant)."""
        dumped = self.model_dump(by_alias=True, exclude_none=True, exclude={"timestamp"})
        return copy_payload(dumped)

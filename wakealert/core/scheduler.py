"""
WakeAlert — Reminder Scheduler.
Maps reminder keys to a single outstanding wake registration.

The scheduler keeps no table of its own: the registry entry under the key's
dispatch token *is* the pending trigger. Scheduling a key again replaces that
entry, cancelling removes it, and once it fires the key is free to be
scheduled again.
"""

import logging
from datetime import datetime
from typing import Mapping

from wakealert.core.models import (
    ReminderKey,
    ReminderRequest,
    ScheduledTrigger,
    ScheduleStatus,
    dispatch_token,
    validate_key,
)
from wakealert.core.registry import TimerRegistry
from wakealert.infra.metrics import TRIGGERS_CANCELLED, TRIGGERS_SCHEDULED

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    Schedules one-shot reminders on a wake-timer registry.

    - schedule(): install or replace the wake registration for a key
    - cancel(): remove it, a no-op when nothing is pending
    - exact wake timing is requested; when the registry denies it the
      registration falls back to inexact and the call reports INEXACT
    """

    def __init__(self, registry: TimerRegistry):
        self.registry = registry

    def schedule(
        self,
        key: ReminderKey,
        payload: Mapping[str, str],
        fire_at: datetime,
    ) -> ScheduleStatus:
        """
        Register a wake request for ``fire_at`` carrying ``payload``.

        Past instants are accepted and fire at the next opportunity.

        Raises:
            ReminderKeyError: If ``key`` is empty (nothing is registered)
            RegistryPersistenceError: If the registry file cannot be written (nothing is registered)
        """
        token = dispatch_token(key)

        exact = self.registry.can_schedule_exact()
        status = ScheduleStatus.EXACT if exact else ScheduleStatus.INEXACT
        if not exact:
            logger.warning(f"Scheduler: exact alarms not permitted, '{key}' scheduled inexact")

        trigger = self.registry.register(token, key, fire_at, payload, exact=exact)
        TRIGGERS_SCHEDULED.labels(mode=status.value).inc()
        logger.info(
            f"Scheduler: '{key}' scheduled for {trigger.fire_at.isoformat()} "
            f"(token={token}, mode={status.value})"
        )
        return status

    def schedule_request(self, request: ReminderRequest) -> ScheduleStatus:
        """Schedule an application-layer request (refId = key, timestamp = fire instant)."""
        return self.schedule(request.key, request.to_payload(), request.fire_at)

    def cancel(self, key: ReminderKey) -> bool:
        """
        Remove any pending wake registration for ``key``.

        Returns True if one was removed. Cancelling an absent key is not an error.
        """
        validate_key(key)
        removed = self.registry.cancel(dispatch_token(key))
        if removed is None:
            logger.debug(f"Scheduler: cancel '{key}', nothing pending")
            return False

        TRIGGERS_CANCELLED.inc()
        logger.info(f"Scheduler: '{key}' cancelled")
        return True

    def get_pending(self, key: ReminderKey) -> ScheduledTrigger | None:
        """The pending trigger for ``key``, if any."""
        trigger = self.registry.get(dispatch_token(key))
        if trigger is None or trigger.key != key:
            return None
        return trigger

    def list_pending(self) -> list[ScheduledTrigger]:
        """All pending triggers, soonest first."""
        return self.registry.pending()

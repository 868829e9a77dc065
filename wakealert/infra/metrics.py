"""
WakeAlert — Prometheus Metrics.
Counters for the schedule → fire → alert → present pipeline.
"""

import logging

from prometheus_client import Counter, Info, generate_latest

from wakealert.core.config import settings

logger = logging.getLogger(__name__)

# ============================================
# Application Info
# ============================================
APP_INFO = Info("wakealert", "WakeAlert reminder engine info")
APP_INFO.info({
    "version": settings.VERSION,
    "environment": settings.ENVIRONMENT,
})

# ============================================
# Scheduler Metrics
# ============================================
TRIGGERS_SCHEDULED = Counter(
    "wakealert_triggers_scheduled_total",
    "Total wake registrations installed (including replacements)",
    ["mode"],  # exact / inexact
)

TRIGGERS_CANCELLED = Counter(
    "wakealert_triggers_cancelled_total",
    "Total pending wake registrations removed by cancel",
)

TRIGGERS_RESTORED = Counter(
    "wakealert_triggers_restored_total",
    "Persisted wake registrations re-armed at startup",
)

TRIGGERS_DROPPED = Counter(
    "wakealert_triggers_dropped_total",
    "Persisted wake registrations dropped at startup (missed while down)",
)

# ============================================
# Delivery Metrics
# ============================================
TRIGGERS_FIRED = Counter(
    "wakealert_triggers_fired_total",
    "Total wake callbacks received by the dispatcher",
    ["kind"],
)

ALERTS_POSTED = Counter(
    "wakealert_alerts_posted_total",
    "Total alerts posted to the notification center",
    ["channel"],
)

PRESENTATIONS = Counter(
    "wakealert_presentations_total",
    "Total full-screen presentations started",
    ["degraded"],  # "true" when required fields were missing
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()

"""
WakeAlert — Infrastructure module.
Logging and metrics.
"""

from wakealert.infra.logging_config import setup_logging
from wakealert.infra.metrics import (
    get_metrics,
    ALERTS_POSTED,
    PRESENTATIONS,
    TRIGGERS_CANCELLED,
    TRIGGERS_DROPPED,
    TRIGGERS_FIRED,
    TRIGGERS_RESTORED,
    TRIGGERS_SCHEDULED,
)

__all__ = [
    "setup_logging",
    "get_metrics",
    "ALERTS_POSTED",
    "PRESENTATIONS",
    "TRIGGERS_CANCELLED",
    "TRIGGERS_DROPPED",
    "TRIGGERS_FIRED",
    "TRIGGERS_RESTORED",
    "TRIGGERS_SCHEDULED",
]

"""
WakeAlert — Centralized Configuration.
Uses pydantic-settings to load from .env with type safety.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration loaded from environment variables."""

    # === App ===
    ENVIRONMENT: str = "development"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/wakealert.log"  # empty = stdout only
    LOG_JSON: bool = True

    # === Wake-timer registry ===
    REGISTRY_FILE: str = "workspace/alarms/registry.json"  # empty = memory only
    EXACT_ALARMS_PERMITTED: bool = True
    INEXACT_WINDOW_SECONDS: int = 60
    RESTORE_ON_STARTUP: bool = True

    # === Alert channel (one-time setup) ===
    ALERT_CHANNEL_ID: str = "medications"
    ALERT_CHANNEL_NAME: str = "Medications"
    ALERT_CHANNEL_DESCRIPTION: str = "Medication and appointment reminders"

    # === Presentation ===
    PRESENTATION_COMPONENT: str = "AlarmScreen"

    model_config = {"env_file": ".env", "case_sensitive": True}

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def persists_registry(self) -> bool:
        return bool(self.REGISTRY_FILE)


settings = Settings()

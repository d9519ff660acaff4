"""Operator-editable automation settings backed by the system_config table.

Values are stored as strings so operators can edit them in place. Each run
reads them once through :meth:`ConfigStore.load_settings` and works from the
returned immutable :class:`AutomationSettings` for its whole duration.
"""

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vaultbets.automation.errors import ConfigInvalid
from vaultbets.common.logging import get_logger
from vaultbets.common.time_utils import format_iso, parse_hhmm, utc_now
from vaultbets.storage.database import Database
from vaultbets.storage.models import ConfigEntry

logger = get_logger(__name__)

LAST_GENERATION_DATE = "last_generation_date"
LAST_GENERATION_PUBLISHED = "last_generation_published"
LAST_GENERATION_TOTAL = "last_generation_total"
LAST_ALERT = "last_alert"
LAST_HEALTH_CHECK = "last_health_check"

BOOKKEEPING_KEYS = (
    LAST_GENERATION_DATE,
    LAST_GENERATION_PUBLISHED,
    LAST_GENERATION_TOTAL,
    LAST_ALERT,
    LAST_HEALTH_CHECK,
)


class AutomationSettings(BaseModel):
    """Typed snapshot of the automation parameters."""

    model_config = ConfigDict(frozen=True)

    daily_generation_time: str = "08:00"
    auto_generation_enabled: bool = True
    auto_publish_enabled: bool = True
    max_tips_per_day: int = Field(default=6, ge=0)
    min_confidence_threshold: int = Field(default=65, ge=0, le=100)
    analysis_lookahead_days: int = Field(default=3, ge=1)
    free_tips_per_day: int = Field(default=1, ge=0)
    premium_confidence_threshold: int = Field(default=75, ge=0, le=100)
    min_odds: float = Field(default=1.2, ge=1.0)
    max_odds: float = Field(default=10.0, ge=1.0)
    max_risk_factors: int = Field(default=4, ge=0)
    odds_update_interval_minutes: int = Field(default=30, ge=1)
    odds_update_window_hours: int = Field(default=72, ge=1)
    min_hours_before_kickoff: int = Field(default=6, ge=0)
    health_check_interval_minutes: int = Field(default=15, ge=1)

    @field_validator("daily_generation_time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        return parse_hhmm(value).strftime("%H:%M")


SETTING_DESCRIPTIONS: dict[str, str] = {
    "daily_generation_time": "Time of day (HH:MM, operating timezone) for daily tip generation",
    "auto_generation_enabled": "Enable automatic daily tip generation",
    "auto_publish_enabled": "Automatically publish accepted tips",
    "max_tips_per_day": "Maximum number of tips accepted per generation run",
    "min_confidence_threshold": "Minimum confidence score for a tip to be accepted",
    "analysis_lookahead_days": "Days ahead to look for upcoming fixtures",
    "free_tips_per_day": "Number of free (non-premium) tips per day",
    "premium_confidence_threshold": "Confidence score at which a tip becomes premium",
    "min_odds": "Lowest acceptable recommended odds",
    "max_odds": "Highest acceptable recommended odds",
    "max_risk_factors": "Maximum number of identified risk factors for acceptance",
    "odds_update_interval_minutes": "Minutes between odds refreshes of published tips",
    "odds_update_window_hours": "Only refresh odds for fixtures kicking off within this many hours",
    "min_hours_before_kickoff": "Skip fixtures kicking off sooner than this many hours",
    "health_check_interval_minutes": "Minutes between health checks of storage and match source",
}

KNOWN_KEYS = frozenset(SETTING_DESCRIPTIONS)


def format_value(value: Any) -> str:
    """Render a setting value the way it is stored."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigStore:
    """Durable key/value configuration with typed settings snapshots."""

    def __init__(self, db: Database):
        self.db = db
        self._last_good: dict[str, Any] = {}

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get a raw value, or the default when the key is missing."""
        entry = self.db.get_config_entry(key)
        return entry.value if entry is not None else default

    def set(self, key: str, value: Any, description: str | None = None) -> None:
        """Insert or update a value, refreshing its timestamp."""
        if description is None:
            description = SETTING_DESCRIPTIONS.get(key)
        self.db.set_config(key, format_value(value), description)

    def entries(self, prefix: str | None = None) -> list[ConfigEntry]:
        """List stored entries, optionally restricted to a key prefix."""
        entries = self.db.list_config()
        if prefix:
            entries = [entry for entry in entries if entry.key.startswith(prefix)]
        return entries

    def seed_defaults(self) -> int:
        """Insert every recognized setting with its default if missing.

        Existing values are never overwritten.

        Returns:
            Number of keys created.
        """
        defaults = AutomationSettings()
        created = 0
        for key, description in SETTING_DESCRIPTIONS.items():
            if self.db.insert_config_default(
                key, format_value(getattr(defaults, key)), description
            ):
                created += 1
        if created:
            logger.info("config_defaults_seeded", created=created)
        return created

    def validate(self, key: str, value: Any) -> Any:
        """Parse a value for a recognized setting.

        Returns:
            The typed value.

        Raises:
            ConfigInvalid: If the key is unknown or the value does not parse.
        """
        if key not in KNOWN_KEYS:
            raise ConfigInvalid(key, format_value(value), "unknown setting")
        try:
            parsed = AutomationSettings.model_validate({key: value})
        except ValidationError as e:
            message = e.errors()[0]["msg"] if e.errors() else str(e)
            raise ConfigInvalid(key, format_value(value), message) from e
        return getattr(parsed, key)

    def load_settings(self) -> AutomationSettings:
        """Read a consistent settings snapshot.

        Missing keys use their defaults. Invalid values log a warning and fall
        back to the last value that parsed for that key, else the default.
        """
        defaults = AutomationSettings()
        stored = {
            entry.key: entry.value for entry in self.db.list_config(list(SETTING_DESCRIPTIONS))
        }
        values: dict[str, Any] = {}

        for key in SETTING_DESCRIPTIONS:
            raw = stored.get(key)
            if raw is None:
                values[key] = getattr(defaults, key)
                continue
            try:
                values[key] = self.validate(key, raw)
            except ConfigInvalid as e:
                fallback = self._last_good.get(key, getattr(defaults, key))
                logger.warning(
                    "config_invalid",
                    key=key,
                    value=raw,
                    reason=e.reason,
                    fallback=format_value(fallback),
                )
                values[key] = fallback
            else:
                self._last_good[key] = values[key]

        if values["min_odds"] > values["max_odds"]:
            logger.warning(
                "config_invalid",
                key="min_odds",
                value=format_value(values["min_odds"]),
                reason="min_odds greater than max_odds",
                fallback="defaults",
            )
            values["min_odds"] = defaults.min_odds
            values["max_odds"] = defaults.max_odds

        return AutomationSettings(**values)

    def record_generation(self, day: date, published: int, total: int) -> None:
        """Store bookkeeping for the last completed generation run."""
        self.db.set_config(LAST_GENERATION_DATE, day.isoformat(), "Date of last tip generation")
        self.db.set_config(
            LAST_GENERATION_PUBLISHED, str(published), "Tips published by last generation"
        )
        self.db.set_config(LAST_GENERATION_TOTAL, str(total), "Tips created by last generation")

    def record_alert(self, alert_type: str, message: str, at: datetime | None = None) -> None:
        """Store the most recent operational alert."""
        payload = {
            "type": alert_type,
            "message": message,
            "timestamp": format_iso(at or utc_now()),
        }
        self.db.set_config(LAST_ALERT, json.dumps(payload), "Most recent automation alert")

    def record_health_check(self, at: datetime) -> None:
        """Store the time of the last completed health check."""
        self.db.set_config(LAST_HEALTH_CHECK, format_iso(at), "Last health check timestamp")

    def bookkeeping(self) -> dict[str, str | None]:
        """Current values of the bookkeeping keys."""
        stored = {entry.key: entry.value for entry in self.db.list_config(list(BOOKKEEPING_KEYS))}
        return {key: stored.get(key) for key in BOOKKEEPING_KEYS}

"""Tip automation: settings, pipeline, scheduler and admin surface."""

from vaultbets.automation.admin import AdminControl, AdminResult
from vaultbets.automation.config_store import AutomationSettings, ConfigStore
from vaultbets.automation.errors import (
    AnnotationFailed,
    ConcurrencyConflict,
    ConfigInvalid,
    JobNotFound,
    PersistenceFailed,
    SourceUnavailable,
)
from vaultbets.automation.pipeline import Pipeline, RunSummary
from vaultbets.automation.scheduler import JobState, Scheduler, next_daily_fire

__all__ = [
    "AdminControl",
    "AdminResult",
    "AnnotationFailed",
    "AutomationSettings",
    "ConcurrencyConflict",
    "ConfigInvalid",
    "ConfigStore",
    "JobNotFound",
    "JobState",
    "PersistenceFailed",
    "Pipeline",
    "RunSummary",
    "Scheduler",
    "SourceUnavailable",
    "next_daily_fire",
]

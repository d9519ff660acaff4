"""Shared infrastructure: app config, logging, time helpers, HTTP pacing."""

from vaultbets.common.config import AppConfig, load_config
from vaultbets.common.logging import get_logger, run_context, setup_logging
from vaultbets.common.rate_limit import RateLimiter, RequestLogger, RetryConfig
from vaultbets.common.time_utils import parse_hhmm, parse_iso, utc_now

__all__ = [
    "AppConfig",
    "RateLimiter",
    "RequestLogger",
    "RetryConfig",
    "get_logger",
    "load_config",
    "parse_hhmm",
    "parse_iso",
    "run_context",
    "setup_logging",
    "utc_now",
]

"""Request pacing, retry backoff and request logging for the HTTP clients."""

import asyncio
import random
import time
from dataclasses import dataclass

from vaultbets.common.logging import get_logger


class RateLimiter:
    """Token bucket shared by every request a client makes."""

    def __init__(self, requests_per_second: float = 10.0, burst_size: int = 10):
        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self._tokens = float(burst_size)
        self._refilled_at = time.monotonic()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int) -> "RateLimiter":
        """Limiter for quota-style APIs that publish a per-minute allowance."""
        return cls(requests_per_second=requests_per_minute / 60.0, burst_size=1)

    async def acquire(self) -> float:
        """Take a token, sleeping until one is available.

        Returns:
            Seconds spent waiting.
        """
        async with self._lock:
            now = time.monotonic()
            refill = (now - self._refilled_at) * self.requests_per_second
            self._tokens = min(float(self.burst_size), self._tokens + refill)
            self._refilled_at = now

            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0

            # The deficit is paid for by sleeping; the bucket starts empty again
            wait = (1.0 - self._tokens) / self.requests_per_second
            self._tokens = 0.0

        await asyncio.sleep(wait)
        return wait


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff for transient HTTP failures."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504)

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes

    def get_delay(self, attempt: int) -> float:
        """Delay before retrying after the given 0-indexed attempt.

        With jitter the delay is spread over 75-125% of the nominal value.
        """
        delay = min(self.base_delay * self.exponential_base**attempt, self.max_delay)
        if self.jitter:
            delay *= 0.75 + random.random() * 0.5
        return delay


class RequestLogger:
    """Request/response events for one provider's HTTP traffic."""

    def __init__(self, provider: str):
        self.logger = get_logger("vaultbets.http").bind(provider=provider)

    def started(self, method: str, path: str) -> float:
        """Log an outgoing request and return its start time."""
        self.logger.debug("api_request", method=method, path=path)
        return time.monotonic()

    def finished(
        self,
        method: str,
        path: str,
        start_time: float,
        status_code: int = 0,
        error: str | None = None,
    ) -> None:
        """Log a response, or a transport error when ``error`` is set."""
        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        if error or status_code >= 400:
            self.logger.warning(
                "api_response_error",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
                error=error,
            )
        else:
            self.logger.info(
                "api_response",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
            )

    def retrying(self, method: str, path: str, attempt: int, delay: float, reason: str) -> None:
        self.logger.info(
            "api_retry",
            method=method,
            path=path,
            attempt=attempt,
            delay_seconds=round(delay, 2),
            reason=reason,
        )

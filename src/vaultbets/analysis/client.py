"""Language-model annotator over an OpenAI-compatible chat completions API."""

import asyncio
import json
from typing import Any

import httpx
from pydantic import ValidationError

from vaultbets.analysis.interfaces import Annotation, AnnotationError, IAnnotator
from vaultbets.common.config import AnnotatorConfig
from vaultbets.common.logging import get_logger
from vaultbets.common.rate_limit import RateLimiter, RequestLogger, RetryConfig
from vaultbets.storage.models import Fixture
from vaultbets.tips.bet_types import BetType

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a professional football betting analyst. For the match given, pick the "
    "single best-value bet and answer with a JSON object with keys: "
    '"bet_type" (one of: {bet_types}), "odds" (decimal odds >= 1.0), '
    '"confidence_score" (integer 0-100), "explanation" (2-3 sentences), and '
    '"analysis" (object with "risk_factors" (list of short strings), '
    '"weather_impact", "venue_advantage_pct" (number), "market_movement", '
    '"betting_volume"). Be conservative with confidence.'
)


class LlmAnnotator(IAnnotator):
    """Annotator backed by a chat completions endpoint returning JSON."""

    def __init__(
        self,
        config: AnnotatorConfig,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize annotator.

        Args:
            config: Annotator configuration.
            retry_config: Retry behaviour for transient HTTP failures.
            transport: HTTP transport, httpx's default when None.
        """
        self.config = config
        self.provider_name = config.provider
        self.cost_per_request = config.cost_per_request
        self.retry_config = retry_config or RetryConfig(max_retries=config.max_retries)
        self.rate_limiter = RateLimiter(
            requests_per_second=config.requests_per_second,
            burst_size=1,
        )
        self.request_logger = RequestLogger(config.provider)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "LlmAnnotator":
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    def build_messages(self, fixture: Fixture) -> list[dict[str, str]]:
        """Build the chat messages for a fixture."""
        bet_types = ", ".join(bt.value for bt in BetType)
        user = (
            f"Match: {fixture.label}\n"
            f"League ID: {fixture.league_id}\n"
            f"Kickoff (UTC): {fixture.kickoff_utc.isoformat()}\n"
            f"Venue: {fixture.venue or 'unknown'}"
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT.format(bet_types=bet_types)},
            {"role": "user", "content": user},
        ]

    async def analyze(self, fixture: Fixture) -> Annotation:
        """Ask the model for a tip and validate its answer."""
        body = {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "response_format": {"type": "json_object"},
            "messages": self.build_messages(fixture),
        }
        data = await self._post("/chat/completions", body, fixture.fixture_id)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AnnotationError(
                "Malformed completion response", fixture_id=fixture.fixture_id
            ) from e

        return parse_annotation(content, fixture.fixture_id)

    async def _post(self, path: str, body: dict[str, Any], fixture_id: int) -> dict[str, Any]:
        """POST with rate limiting and retry on transient failures."""
        last_error: Exception | None = None

        for attempt in range(self.retry_config.attempts):
            await self.rate_limiter.acquire()
            start_time = self.request_logger.started("POST", path)

            try:
                response = await self.client.post(path, json=body)
            except httpx.RequestError as e:
                last_error = e
                self.request_logger.finished("POST", path, start_time, error=str(e))
            else:
                self.request_logger.finished("POST", path, start_time, response.status_code)
                if response.status_code == 200:
                    return response.json()
                last_error = AnnotationError(
                    f"HTTP {response.status_code}: {response.text[:200]}",
                    fixture_id=fixture_id,
                )
                if not self.retry_config.is_retryable(response.status_code):
                    raise last_error

            if attempt < self.retry_config.max_retries:
                delay = self.retry_config.get_delay(attempt)
                self.request_logger.retrying("POST", path, attempt + 1, delay, str(last_error))
                await asyncio.sleep(delay)

        raise AnnotationError(
            f"Request failed after {self.retry_config.attempts} attempts",
            fixture_id=fixture_id,
        ) from last_error


def parse_annotation(content: str | dict[str, Any], fixture_id: int | None = None) -> Annotation:
    """Parse and validate a model answer into an Annotation.

    Accepts ``confidence`` and ``recommended_odds`` as aliases, since models
    drift between spellings.

    Raises:
        AnnotationError: If the answer is not valid JSON or fails validation.
    """
    if isinstance(content, str):
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise AnnotationError("Answer is not valid JSON", fixture_id=fixture_id) from e
    else:
        payload = dict(content)

    if not isinstance(payload, dict):
        raise AnnotationError("Answer is not a JSON object", fixture_id=fixture_id)

    if "confidence_score" not in payload and "confidence" in payload:
        payload["confidence_score"] = payload.pop("confidence")
    if "odds" not in payload and "recommended_odds" in payload:
        payload["odds"] = payload.pop("recommended_odds")

    try:
        return Annotation.model_validate(payload)
    except ValidationError as e:
        raise AnnotationError(
            f"Invalid annotation: {e.error_count()} errors", fixture_id=fixture_id
        ) from e

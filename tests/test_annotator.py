"""Tests for annotations, bet types and the language-model annotator."""

import json

import httpx
import pytest

from conftest import make_fixture
from vaultbets.analysis.client import LlmAnnotator, parse_annotation
from vaultbets.analysis.interfaces import AnnotationError
from vaultbets.common.config import AnnotatorConfig
from vaultbets.common.rate_limit import RetryConfig
from vaultbets.tips.bet_types import BetType

VALID_ANSWER = {
    "bet_type": "home_win",
    "odds": 1.95,
    "confidence_score": 74,
    "explanation": "Arsenal unbeaten at home in ten.",
    "analysis": {
        "risk_factors": ["key striker doubtful"],
        "weather_impact": "none",
        "venue_advantage_pct": 12.5,
        "market_movement": "shortening",
        "betting_volume": "high",
    },
}


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestBetType:
    """Test bet type parsing."""

    def test_canonical(self):
        assert BetType.parse("over_2_5_goals") == BetType.OVER_2_5_GOALS

    def test_spellings(self):
        assert BetType.parse("Over 2.5 Goals") == BetType.OVER_2_5_GOALS
        assert BetType.parse("double-chance-home-draw") == BetType.DOUBLE_CHANCE_HOME_DRAW
        assert BetType.parse(" BTTS ") == BetType.BTTS_YES
        assert BetType.parse("X") == BetType.DRAW
        assert BetType.parse("1X") == BetType.DOUBLE_CHANCE_HOME_DRAW

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown bet type"):
            BetType.parse("first_goalscorer")


class TestParseAnnotation:
    """Test validation of model answers."""

    def test_valid(self):
        annotation = parse_annotation(json.dumps(VALID_ANSWER), fixture_id=7)

        assert annotation.bet_type == BetType.HOME_WIN
        assert annotation.odds == 1.95
        assert annotation.confidence_score == 74
        assert annotation.risk_factor_count == 1
        assert annotation.analysis.market_movement == "shortening"

    def test_aliases(self):
        answer = {"bet_type": "Draw", "recommended_odds": 3.4, "confidence": 68.6}

        annotation = parse_annotation(answer)

        assert annotation.bet_type == BetType.DRAW
        assert annotation.odds == 3.4
        assert annotation.confidence_score == 69
        assert annotation.analysis is None
        assert annotation.risk_factor_count == 0

    def test_not_json(self):
        with pytest.raises(AnnotationError, match="not valid JSON") as exc_info:
            parse_annotation("Home win looks good", fixture_id=7)
        assert exc_info.value.fixture_id == 7

    def test_not_an_object(self):
        with pytest.raises(AnnotationError, match="not a JSON object"):
            parse_annotation("[1, 2]")

    @pytest.mark.parametrize(
        "override",
        [
            {"bet_type": "first_goalscorer"},
            {"odds": 0.5},
            {"confidence_score": 140},
            {"confidence_score": None},
        ],
    )
    def test_invalid_fields(self, override):
        with pytest.raises(AnnotationError, match="Invalid annotation"):
            parse_annotation({**VALID_ANSWER, **override})


@pytest.fixture
def annotator_config() -> AnnotatorConfig:
    return AnnotatorConfig(api_key="test_key", model="test-model", requests_per_second=1000)


def make_annotator(config: AnnotatorConfig, handler, max_retries: int = 1) -> LlmAnnotator:
    return LlmAnnotator(
        config,
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0, jitter=False),
        transport=httpx.MockTransport(handler),
    )


class TestLlmAnnotator:
    """Test the chat completions annotator."""

    def test_provider_from_config(self, annotator_config: AnnotatorConfig):
        annotator = LlmAnnotator(annotator_config)
        assert annotator.provider_name == "openai"
        assert annotator.cost_per_request == annotator_config.cost_per_request

    def test_requires_context_manager(self, annotator_config: AnnotatorConfig):
        with pytest.raises(RuntimeError):
            _ = LlmAnnotator(annotator_config).client

    def test_messages_describe_fixture(self, annotator_config: AnnotatorConfig):
        messages = LlmAnnotator(annotator_config).build_messages(make_fixture(3))

        assert messages[0]["role"] == "system"
        assert "btts_yes" in messages[0]["content"]
        assert "Home 3 vs Away 3" in messages[1]["content"]
        assert "Test Ground" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_analyze(self, annotator_config: AnnotatorConfig):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=completion(json.dumps(VALID_ANSWER)))

        async with make_annotator(annotator_config, handler) as annotator:
            annotation = await annotator.analyze(make_fixture(3))

        assert annotation.confidence_score == 74
        assert requests[0].headers["Authorization"] == "Bearer test_key"
        assert requests[0].url.path == "/v1/chat/completions"
        body = json.loads(requests[0].content)
        assert body["model"] == "test-model"
        assert body["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_retries_transient_status(self, annotator_config: AnnotatorConfig):
        statuses = iter([503, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            if status != 200:
                return httpx.Response(status, text="overloaded")
            return httpx.Response(200, json=completion(json.dumps(VALID_ANSWER)))

        async with make_annotator(annotator_config, handler) as annotator:
            annotation = await annotator.analyze(make_fixture(3))

        assert annotation.bet_type == BetType.HOME_WIN

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, annotator_config: AnnotatorConfig):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, text="rate limited")

        async with make_annotator(annotator_config, handler, max_retries=2) as annotator:
            with pytest.raises(AnnotationError, match="after 3 attempts") as exc_info:
                await annotator.analyze(make_fixture(3))

        assert len(calls) == 3
        assert exc_info.value.fixture_id == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, annotator_config: AnnotatorConfig):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401, text="bad key")

        async with make_annotator(annotator_config, handler) as annotator:
            with pytest.raises(AnnotationError, match="HTTP 401"):
                await annotator.analyze(make_fixture(3))

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_completion(self, annotator_config: AnnotatorConfig):
        async with make_annotator(
            annotator_config, lambda request: httpx.Response(200, json={"choices": []})
        ) as annotator:
            with pytest.raises(AnnotationError, match="Malformed"):
                await annotator.analyze(make_fixture(3))

    @pytest.mark.asyncio
    async def test_invalid_answer(self, annotator_config: AnnotatorConfig):
        answer = completion('{"bet_type": "draw"}')

        async with make_annotator(
            annotator_config, lambda request: httpx.Response(200, json=answer)
        ) as annotator:
            with pytest.raises(AnnotationError, match="Invalid annotation"):
                await annotator.analyze(make_fixture(3))

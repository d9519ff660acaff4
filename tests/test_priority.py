"""Tests for fixture prioritization."""

from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import NOW, make_fixture
from vaultbets.common.config import PipelineConfig
from vaultbets.tips.priority import match_priority, prioritize_fixtures


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


class TestMatchPriority:
    """Test fixture scoring."""

    @pytest.mark.parametrize(
        "hours_ahead,expected",
        [(12, 10), (24, 15), (36, 15), (48, 15), (72, 12)],
    )
    def test_lead_time(self, pipeline_config: PipelineConfig, hours_ahead, expected):
        fixture = make_fixture(1, hours_ahead=hours_ahead)
        assert match_priority(fixture, NOW, pipeline_config) == expected

    def test_league_weight(self, pipeline_config: PipelineConfig):
        championship = replace(make_fixture(1, hours_ahead=12), league_id=40)
        unlisted = replace(make_fixture(2, hours_ahead=12), league_id=135)

        assert match_priority(championship, NOW, pipeline_config) == 8
        assert match_priority(unlisted, NOW, pipeline_config) == 5

    def test_big_clubs(self, pipeline_config: PipelineConfig):
        one_side = replace(make_fixture(1, hours_ahead=12), home_team_name="Liverpool")
        both_sides = replace(one_side, away_team_name="Arsenal")

        assert match_priority(one_side, NOW, pipeline_config) == 13
        assert match_priority(both_sides, NOW, pipeline_config) == 18

    def test_custom_weights(self):
        config = PipelineConfig(
            league_priorities={39: 1}, default_league_priority=0, big_clubs=["Home 1"]
        )

        assert match_priority(make_fixture(1, hours_ahead=12), NOW, config) == 4
        assert match_priority(make_fixture(2, hours_ahead=12), NOW, config) == 1


class TestPrioritizeFixtures:
    """Test selection and ordering."""

    def test_highest_priority_first(self, pipeline_config: PipelineConfig):
        soon = make_fixture(1, hours_ahead=12)
        sweet_spot = make_fixture(2, hours_ahead=30)
        later = make_fixture(3, hours_ahead=60)

        selected = prioritize_fixtures(
            [soon, later, sweet_spot], NOW, pipeline_config, timedelta(hours=6), limit=10
        )

        assert [f.fixture_id for f in selected] == [2, 3, 1]

    def test_ties_keep_kickoff_order(self, pipeline_config: PipelineConfig):
        fixtures = [make_fixture(5, hours_ahead=30), make_fixture(4, hours_ahead=26)]

        selected = prioritize_fixtures(
            fixtures, NOW, pipeline_config, timedelta(hours=6), limit=10
        )

        assert [f.fixture_id for f in selected] == [4, 5]

    def test_minimum_lead(self, pipeline_config: PipelineConfig):
        fixtures = [make_fixture(1, hours_ahead=5.5), make_fixture(2, hours_ahead=6)]

        selected = prioritize_fixtures(
            fixtures, NOW, pipeline_config, timedelta(hours=6), limit=10
        )

        assert [f.fixture_id for f in selected] == [2]

    def test_limit(self, pipeline_config: PipelineConfig):
        fixtures = [make_fixture(i) for i in range(1, 6)]

        selected = prioritize_fixtures(
            fixtures, NOW, pipeline_config, timedelta(hours=6), limit=3
        )

        assert [f.fixture_id for f in selected] == [1, 2, 3]

    def test_zero_limit(self, pipeline_config: PipelineConfig):
        assert prioritize_fixtures([make_fixture(1)], NOW, pipeline_config, timedelta(0), 0) == []

"""Fixture prioritization ahead of annotation.

Each run only annotates its highest-priority fixtures. The order returned
here is the order admission sees candidates in, so it also decides which
tips win the daily cap.
"""

from datetime import datetime, timedelta

from vaultbets.common.config import PipelineConfig
from vaultbets.storage.models import Fixture

# Kickoff lead times (hours) preferred for analysis
SWEET_SPOT_HOURS = (24.0, 48.0)
SWEET_SPOT_BONUS = 5
LATER_BONUS = 2
BIG_CLUB_BONUS = 3
BIG_MATCH_BONUS = 5


def match_priority(fixture: Fixture, now: datetime, config: PipelineConfig) -> int:
    """Score a fixture by league, lead time and the clubs involved."""
    priority = config.league_priorities.get(fixture.league_id, config.default_league_priority)

    hours_until = (fixture.kickoff_utc - now) / timedelta(hours=1)
    if SWEET_SPOT_HOURS[0] <= hours_until <= SWEET_SPOT_HOURS[1]:
        priority += SWEET_SPOT_BONUS
    elif hours_until > SWEET_SPOT_HOURS[1]:
        priority += LATER_BONUS

    big_clubs = set(config.big_clubs)
    home_big = fixture.home_team_name in big_clubs
    away_big = fixture.away_team_name in big_clubs
    if home_big or away_big:
        priority += BIG_CLUB_BONUS
    if home_big and away_big:
        priority += BIG_MATCH_BONUS

    return priority


def prioritize_fixtures(
    fixtures: list[Fixture],
    now: datetime,
    config: PipelineConfig,
    min_lead: timedelta,
    limit: int,
) -> list[Fixture]:
    """Select fixtures to annotate, highest priority first.

    Fixtures kicking off sooner than ``min_lead`` are dropped. Ties keep
    kickoff order.

    Args:
        fixtures: Fixtures inside the analysis window.
        now: Start of the run.
        config: League weights and big club names.
        min_lead: Minimum time before kickoff.
        limit: Maximum number of fixtures returned.
    """
    suitable = [f for f in fixtures if f.kickoff_utc - now >= min_lead]
    ranked = sorted(
        suitable,
        key=lambda f: (-match_priority(f, now, config), f.kickoff_utc, f.fixture_id),
    )
    return ranked[:limit]

"""Closed set of bet types a tip can recommend."""

from enum import Enum


class BetType(str, Enum):
    """Bet type tag of a tip."""

    # Match result
    HOME_WIN = "home_win"
    AWAY_WIN = "away_win"
    DRAW = "draw"
    # Total goals
    OVER_1_5_GOALS = "over_1_5_goals"
    UNDER_1_5_GOALS = "under_1_5_goals"
    OVER_2_5_GOALS = "over_2_5_goals"
    UNDER_2_5_GOALS = "under_2_5_goals"
    OVER_3_5_GOALS = "over_3_5_goals"
    UNDER_3_5_GOALS = "under_3_5_goals"
    # Both teams to score
    BTTS_YES = "btts_yes"
    BTTS_NO = "btts_no"
    # Handicap
    HOME_HANDICAP_MINUS_1 = "home_handicap_minus_1"
    HOME_HANDICAP_PLUS_1 = "home_handicap_plus_1"
    AWAY_HANDICAP_MINUS_1 = "away_handicap_minus_1"
    AWAY_HANDICAP_PLUS_1 = "away_handicap_plus_1"
    # Double chance
    DOUBLE_CHANCE_HOME_DRAW = "double_chance_home_draw"
    DOUBLE_CHANCE_AWAY_DRAW = "double_chance_away_draw"
    DOUBLE_CHANCE_HOME_AWAY = "double_chance_home_away"
    # Clean sheet
    HOME_CLEAN_SHEET = "home_clean_sheet"
    AWAY_CLEAN_SHEET = "away_clean_sheet"

    @classmethod
    def parse(cls, value: str) -> "BetType":
        """Parse a bet type, accepting a few common spellings.

        Raises:
            ValueError: If the value is not a known bet type.
        """
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_").replace(".", "_")
        normalized = _ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown bet type: {value!r}") from None


_ALIASES = {
    "btts": "btts_yes",
    "both_teams_to_score": "btts_yes",
    "1": "home_win",
    "x": "draw",
    "2": "away_win",
    "1x": "double_chance_home_draw",
    "x2": "double_chance_away_draw",
    "12": "double_chance_home_away",
}

"""Match and odds source interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

from vaultbets.common.time_utils import utc_now
from vaultbets.storage.models import Fixture
from vaultbets.tips.bet_types import BetType


@dataclass(frozen=True)
class OddsQuote:
    """Current decimal odds for one bet type on one fixture."""

    fixture_id: int
    bet_type: BetType
    odds: float
    bookmaker: str = ""


class IMatchSource(ABC):
    """Interface for the upcoming fixtures source."""

    provider_name: str = "match_source"

    @abstractmethod
    async def list_upcoming(self, start: datetime, end: datetime) -> list[Fixture]:
        """List fixtures kicking off within ``[start, end]``.

        An empty list is a valid result.

        Raises:
            Exception: If the source is unreachable.
        """
        ...

    async def check_health(self) -> None:
        """Raise if the source cannot serve fixtures right now.

        Lists the next day of fixtures unless a source has a cheaper check.
        """
        now = utc_now()
        await self.list_upcoming(now, now + timedelta(days=1))


class IOddsSource(ABC):
    """Interface for current market odds."""

    provider_name: str = "odds_source"

    @abstractmethod
    async def get_odds(self, fixture_id: int, bet_type: BetType) -> OddsQuote | None:
        """Get current odds for a bet type, or None if the market is not offered."""
        ...

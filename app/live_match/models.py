"""
Data models for the match lifecycle.

Regular fixtures and bracket matches follow the same scheduled -> live ->
finished rules but store their scores under different column names. MatchKind
captures those differences so the controller can treat both alike.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

from app.models import Match, EliminationMatch


class MatchStatus(Enum):
    """Lifecycle states. FINISHED is terminal."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"


class Side(Enum):
    """Which side of a fixture a score change applies to."""
    HOME = "home"
    AWAY = "away"


class Stage(Enum):
    """Elimination rounds in bracket order."""
    QUARTER = "quarter"
    SEMI = "semi"
    FINAL = "final"

    @property
    def order(self) -> int:
        return list(Stage).index(self)


@dataclass(frozen=True)
class MatchKind:
    """Column layout of a match table."""
    name: str
    model: Type[Any]
    table: str
    home_team_field: str
    away_team_field: str
    live_home_field: str
    live_away_field: str
    final_home_field: str
    final_away_field: str
    decides_winner: bool
    updates_team_stats: bool
    side_aliases: Dict[str, Side] = field(default_factory=dict)

    def parse_side(self, value: Any) -> Side:
        """Accept a Side or one of this kind's labels ("home"/"away", "team1"/"team2")."""
        if isinstance(value, Side):
            return value
        key = str(value).strip().lower()
        if key not in self.side_aliases:
            raise ValueError(f"Unknown side '{value}' for {self.name} match")
        return self.side_aliases[key]

    def live_field(self, side: Side) -> str:
        return self.live_home_field if side is Side.HOME else self.live_away_field

    def live_score(self, row: Any) -> "Score":
        return Score(
            home=getattr(row, self.live_home_field) or 0,
            away=getattr(row, self.live_away_field) or 0,
        )

    def team_ids(self, row: Any) -> Tuple[Optional[int], Optional[int]]:
        return getattr(row, self.home_team_field), getattr(row, self.away_team_field)


REGULAR = MatchKind(
    name="regular",
    model=Match,
    table="matches",
    home_team_field="home_team_id",
    away_team_field="away_team_id",
    live_home_field="live_home_score",
    live_away_field="live_away_score",
    final_home_field="home_score",
    final_away_field="away_score",
    decides_winner=False,
    updates_team_stats=True,
    side_aliases={"home": Side.HOME, "away": Side.AWAY},
)

ELIMINATION = MatchKind(
    name="elimination",
    model=EliminationMatch,
    table="elimination_matches",
    home_team_field="team1_id",
    away_team_field="team2_id",
    live_home_field="live_team1_score",
    live_away_field="live_team2_score",
    final_home_field="team1_score",
    final_away_field="team2_score",
    decides_winner=True,
    updates_team_stats=False,
    side_aliases={"team1": Side.HOME, "team2": Side.AWAY, "home": Side.HOME, "away": Side.AWAY},
)


@dataclass(frozen=True)
class Score:
    """A home/away tally."""
    home: int
    away: int

    @property
    def display(self) -> str:
        return f"{self.home} - {self.away}"

    def winner(self) -> Optional[Side]:
        """Side with the strictly higher score; None on a tie (no shootouts)."""
        if self.home > self.away:
            return Side.HOME
        if self.away > self.home:
            return Side.AWAY
        return None


@dataclass(frozen=True)
class MatchFinalized:
    """
    Emitted once when a regular fixture finishes.

    Consumed by the team statistics handler.
    """
    match_id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int

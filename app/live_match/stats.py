"""
Team statistics update applied when a regular fixture finishes.

The arithmetic (`apply_result`) is pure; `TeamStatsHandler` loads the two teams,
applies it and leaves the writes in the caller's transaction so the match
status and both teams are committed together.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Tuple

from sqlalchemy.orm import Session

from app.models import Team
from .errors import MatchNotFoundError
from .models import MatchFinalized

logger = logging.getLogger("live_match.stats")

COUNTER_FIELDS = ("wins", "draws", "losses", "goals_for", "goals_against")


@dataclass(frozen=True)
class ResultCounters:
    """A team's cumulative result counters."""
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @classmethod
    def from_team(cls, team: Any) -> "ResultCounters":
        return cls(**{name: getattr(team, name) or 0 for name in COUNTER_FIELDS})


def apply_result(
    home: ResultCounters,
    away: ResultCounters,
    home_score: int,
    away_score: int,
) -> Tuple[ResultCounters, ResultCounters]:
    """
    New counters for both teams after one final score.

    Exactly one of win/draw/loss moves for each side; goals for and against
    grow by the respective scores.
    """
    if home_score < 0 or away_score < 0:
        raise ValueError("Scores cannot be negative")

    home = replace(
        home,
        goals_for=home.goals_for + home_score,
        goals_against=home.goals_against + away_score,
    )
    away = replace(
        away,
        goals_for=away.goals_for + away_score,
        goals_against=away.goals_against + home_score,
    )

    if home_score > away_score:
        return replace(home, wins=home.wins + 1), replace(away, losses=away.losses + 1)
    if away_score > home_score:
        return replace(home, losses=home.losses + 1), replace(away, wins=away.wins + 1)
    return replace(home, draws=home.draws + 1), replace(away, draws=away.draws + 1)


class TeamStatsHandler:
    """Consumes MatchFinalized events. Does not commit."""

    def __init__(self, db: Session):
        self.db = db

    def handle(self, event: MatchFinalized) -> Tuple[Team, Team]:
        home_team = self.db.get(Team, event.home_team_id)
        away_team = self.db.get(Team, event.away_team_id)
        if home_team is None:
            raise MatchNotFoundError("teams", event.home_team_id)
        if away_team is None:
            raise MatchNotFoundError("teams", event.away_team_id)

        new_home, new_away = apply_result(
            ResultCounters.from_team(home_team),
            ResultCounters.from_team(away_team),
            event.home_score,
            event.away_score,
        )
        _write_counters(home_team, new_home)
        _write_counters(away_team, new_away)

        logger.info(
            f"Match {event.match_id} finalized {event.home_score}-{event.away_score}: "
            f"updated teams {home_team.id} and {away_team.id}"
        )
        return home_team, away_team


def _write_counters(team: Team, counters: ResultCounters) -> None:
    for name in COUNTER_FIELDS:
        setattr(team, name, getattr(counters, name))

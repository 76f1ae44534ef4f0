"""
Group standings.

Teams carry raw counters (wins, draws, losses, goals for/against). Everything a
table shows beyond those is derived here on each read.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Tuple

POINTS_PER_WIN = 3
POINTS_PER_DRAW = 1


@dataclass
class StandingRow:
    """One team's line in a group table."""
    id: int
    name: str
    group_name: str
    logo_url: str = ""
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @property
    def matches_played(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def points(self) -> int:
        return self.wins * POINTS_PER_WIN + self.draws * POINTS_PER_DRAW

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    @classmethod
    def from_team(cls, team: Any) -> "StandingRow":
        """Build from an ORM Team or any object with the same attributes."""
        return cls(
            id=team.id,
            name=team.name,
            group_name=team.group_name,
            logo_url=team.logo_url or "",
            wins=team.wins or 0,
            draws=team.draws or 0,
            losses=team.losses or 0,
            goals_for=team.goals_for or 0,
            goals_against=team.goals_against or 0,
        )

    def to_dict(self, position: int = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "group_name": self.group_name,
            "logo_url": self.logo_url,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "matches_played": self.matches_played,
            "points": self.points,
            "goal_difference": self.goal_difference,
        }
        if position is not None:
            data["position"] = position
        return data


def _ranking_key(row: StandingRow) -> Tuple[int, int]:
    return (row.points, row.goal_difference)


def compute_standings(teams: Iterable[Any]) -> Dict[str, List[StandingRow]]:
    """
    Group teams by label and rank each group.

    Order: points desc, then goal difference desc. Teams level on both keep
    the order they were fetched in (sorted() is stable).
    """
    grouped: Dict[str, List[StandingRow]] = {}
    for team in teams:
        row = team if isinstance(team, StandingRow) else StandingRow.from_team(team)
        grouped.setdefault(row.group_name, []).append(row)

    return {
        group: sorted(rows, key=_ranking_key, reverse=True)
        for group, rows in grouped.items()
    }


def ranked(rows: List[StandingRow]) -> Iterator[Tuple[int, StandingRow]]:
    """Yield (position, row) with 1-based positions."""
    return enumerate(rows, start=1)


def standings_to_dict(standings: Dict[str, List[StandingRow]]) -> Dict[str, List[Dict[str, Any]]]:
    """Serialize computed standings with positions filled in."""
    return {
        group: [row.to_dict(position=pos) for pos, row in ranked(rows)]
        for group, rows in standings.items()
    }


@dataclass
class TeamTotals:
    """Counters rebuilt from match history."""
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    def record(self, scored: int, conceded: int) -> None:
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.wins += 1
        elif scored < conceded:
            self.losses += 1
        else:
            self.draws += 1


def recompute_team_totals(team_ids: Iterable[int], finished_matches: Iterable[Any]) -> Dict[int, TeamTotals]:
    """
    Rebuild every team's counters from finished regular matches.

    Matches without both final scores are skipped. Teams with no finished
    match come back with zeroed totals.
    """
    totals: Dict[int, TeamTotals] = {team_id: TeamTotals() for team_id in team_ids}
    for match in finished_matches:
        if match.home_score is None or match.away_score is None:
            continue
        totals.setdefault(match.home_team_id, TeamTotals()).record(match.home_score, match.away_score)
        totals.setdefault(match.away_team_id, TeamTotals()).record(match.away_score, match.home_score)
    return totals

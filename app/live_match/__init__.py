"""
Live match module.

Lifecycle of regular fixtures and bracket matches: start, live score and
clock changes, finish, and the team statistics update a finish triggers.
"""
from .models import (
    MatchStatus,
    Side,
    Stage,
    MatchKind,
    Score,
    MatchFinalized,
    REGULAR,
    ELIMINATION,
)
from .errors import (
    LeagueError,
    NotAuthenticatedError,
    MatchNotFoundError,
    InvalidTransitionError,
)
from .stats import ResultCounters, TeamStatsHandler, apply_result
from .lifecycle import MatchLifecycleController
from .ticker import MinuteTicker

__all__ = [
    # Models
    "MatchStatus",
    "Side",
    "Stage",
    "MatchKind",
    "Score",
    "MatchFinalized",
    "REGULAR",
    "ELIMINATION",
    # Errors
    "LeagueError",
    "NotAuthenticatedError",
    "MatchNotFoundError",
    "InvalidTransitionError",
    # Stats
    "ResultCounters",
    "TeamStatsHandler",
    "apply_result",
    # Controller
    "MatchLifecycleController",
    "MinuteTicker",
]

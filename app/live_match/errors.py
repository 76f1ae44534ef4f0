"""
Exceptions raised by the match lifecycle.
"""
from typing import Optional


class LeagueError(Exception):
    """Base class for league domain errors."""


class NotAuthenticatedError(LeagueError):
    """A mutation was attempted without an admin session."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Sign in to {action}")


class MatchNotFoundError(LeagueError):
    """The match (or a team it references) does not exist."""

    def __init__(self, table: str, match_id: int):
        self.table = table
        self.match_id = match_id
        super().__init__(f"{table} row {match_id} not found")


class InvalidTransitionError(LeagueError):
    """The requested transition is not allowed from the match's current state."""

    def __init__(self, match_id: int, status: str, action: str, reason: Optional[str] = None):
        self.match_id = match_id
        self.status = status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} match {match_id} while it is {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidReferenceError(LeagueError):
    """A write refers to a row that does not exist or does not fit (e.g. a player from another team)."""

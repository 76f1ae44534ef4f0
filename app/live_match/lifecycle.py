"""
Match lifecycle controller.

scheduled -> live -> finished, for regular fixtures and bracket matches alike.
Every transition needs an admin session (`actor`), checks the current status,
writes through the database session and publishes a change notification.
Nothing is retried; a failed commit is rolled back, logged and re-raised.
"""
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from app.realtime import ChangeFeed
from . import clock
from .errors import InvalidTransitionError, MatchNotFoundError, NotAuthenticatedError
from .models import MatchFinalized, MatchKind, MatchStatus, Side
from .stats import TeamStatsHandler

logger = logging.getLogger("live_match.lifecycle")

ALLOWED_DELTAS = (1, -1)


class MatchLifecycleController:
    """
    Applies lifecycle transitions to one database session.

    Args:
        db: SQLAlchemy session
        feed: change feed notified after each commit (optional)
        stats_handler: consumer of MatchFinalized; defaults to TeamStatsHandler
    """

    def __init__(
        self,
        db: Session,
        feed: Optional[ChangeFeed] = None,
        stats_handler: Optional[TeamStatsHandler] = None,
        max_minute: int = None,
        auto_minute_cap: int = None,
    ):
        self.db = db
        self.feed = feed
        self.stats_handler = stats_handler or TeamStatsHandler(db)
        self.max_minute = max_minute if max_minute is not None else settings.max_minute
        self.auto_minute_cap = auto_minute_cap if auto_minute_cap is not None else settings.auto_minute_cap

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, kind: MatchKind, match_id: int, actor: Any) -> Any:
        """Kick off: status live, minute 1, live score 0-0. Team stats untouched."""
        self._require_actor(actor, "start a match")
        row = self._load(kind, match_id)
        self._require_status(row, MatchStatus.SCHEDULED, "start")

        home_id, away_id = kind.team_ids(row)
        if home_id is None or away_id is None:
            raise InvalidTransitionError(row.id, row.status, "start", "both team slots must be filled")

        row.status = MatchStatus.LIVE.value
        row.current_minute = 1
        setattr(row, kind.live_home_field, 0)
        setattr(row, kind.live_away_field, 0)

        self._commit(kind, row, "start")
        logger.info(f"{kind.name} match {row.id} started")
        return row

    def adjust_live_score(self, kind: MatchKind, match_id: int, side: Any, delta: int, actor: Any) -> Any:
        """+1 / -1 on one side's live score, never below zero."""
        self._require_actor(actor, "change the score")
        if delta not in ALLOWED_DELTAS:
            raise ValueError(f"Score delta must be +1 or -1, got {delta}")
        side = kind.parse_side(side)
        row = self._load(kind, match_id)
        self._require_status(row, MatchStatus.LIVE, "change the score of")

        field_name = kind.live_field(side)
        current = getattr(row, field_name) or 0
        setattr(row, field_name, max(0, current + delta))

        self._commit(kind, row, "score")
        logger.debug(f"{kind.name} match {row.id} live score now {kind.live_score(row).display}")
        return row

    def adjust_minute(
        self,
        kind: MatchKind,
        match_id: int,
        minute: Optional[int],
        actor: Any,
        delta: Optional[int] = None,
    ) -> Any:
        """
        Set the clock by hand, clamped to [0, max_minute].

        Pass `minute` for an absolute value or `delta` to step from the
        stored minute; delta wins when both are given.
        """
        self._require_actor(actor, "set the match minute")
        row = self._load(kind, match_id)
        self._require_status(row, MatchStatus.LIVE, "set the minute of")

        if delta is not None:
            row.current_minute = clock.apply_minute_delta(row.current_minute, delta, maximum=self.max_minute)
        else:
            row.current_minute = clock.set_minute(minute, maximum=self.max_minute)
        self._commit(kind, row, "minute")
        return row

    def tick(self, kind: MatchKind, match_id: int) -> Optional[int]:
        """
        One automatic clock step.

        Returns the match minute after the step, or None when the match is
        no longer live (the ticker should stop). At the cap nothing is written.
        """
        row = self.db.get(kind.model, match_id)
        if row is None or row.status != MatchStatus.LIVE.value:
            return None

        minute = clock.next_tick(row.current_minute, cap=self.auto_minute_cap)
        if minute is None:
            return row.current_minute

        row.current_minute = minute
        self._commit(kind, row, "tick")
        return minute

    def finish(self, kind: MatchKind, match_id: int, actor: Any) -> Any:
        """
        Final whistle: live score becomes the final score.

        Bracket matches get a winner (none on a tie). Regular fixtures emit
        MatchFinalized; the team update shares this transaction.
        """
        self._require_actor(actor, "finish a match")
        row = self._load(kind, match_id)
        self._require_status(row, MatchStatus.LIVE, "finish")

        score = kind.live_score(row)
        row.status = MatchStatus.FINISHED.value
        setattr(row, kind.final_home_field, score.home)
        setattr(row, kind.final_away_field, score.away)

        home_id, away_id = kind.team_ids(row)
        if kind.decides_winner:
            winner = score.winner()
            row.winner_id = {Side.HOME: home_id, Side.AWAY: away_id}.get(winner)
        else:
            row.played = True

        touched_teams = []
        if kind.updates_team_stats:
            event = MatchFinalized(
                match_id=row.id,
                home_team_id=home_id,
                away_team_id=away_id,
                home_score=score.home,
                away_score=score.away,
            )
            try:
                touched_teams = [t.id for t in self.stats_handler.handle(event)]
            except (MatchNotFoundError, SQLAlchemyError):
                self.db.rollback()
                raise

        self._commit(kind, row, "finish")
        for team_id in touched_teams:
            self._publish("teams", team_id)

        logger.info(f"{kind.name} match {row.id} finished {score.display}")
        return row

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_actor(self, actor: Any, action: str) -> None:
        if actor is None:
            logger.warning(f"Rejected unauthenticated attempt to {action}")
            raise NotAuthenticatedError(action)

    def _load(self, kind: MatchKind, match_id: int) -> Any:
        row = self.db.get(kind.model, match_id)
        if row is None:
            raise MatchNotFoundError(kind.table, match_id)
        return row

    def _require_status(self, row: Any, expected: MatchStatus, action: str) -> None:
        if row.status != expected.value:
            logger.warning(f"Rejected {action} on match {row.id}: status is {row.status}")
            raise InvalidTransitionError(row.id, row.status, action)

    def _commit(self, kind: MatchKind, row: Any, action: str) -> None:
        row_id = row.id
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Store rejected {action} on {kind.table} {row_id}", exc_info=True)
            raise
        self.db.refresh(row)
        self._publish(kind.table, row_id)

    def _publish(self, table: str, row_id: int) -> None:
        if self.feed is not None:
            self.feed.publish(table, "update", row_id)

"""
Automatic match clock.

One background thread per live match advances the minute every
`interval_seconds` until the match stops being live or the ticker is
cancelled. The thread opens its own database session for each step.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.realtime import ChangeFeed
from .lifecycle import MatchLifecycleController
from .models import ELIMINATION, REGULAR, MatchKind, MatchStatus

logger = logging.getLogger("live_match.ticker")

TickerKey = Tuple[str, int]

KINDS: Dict[str, MatchKind] = {REGULAR.name: REGULAR, ELIMINATION.name: ELIMINATION}


class MinuteTicker:
    """
    Registry of per-match clock threads.

    Args:
        session_factory: callable returning a new Session
        interval_seconds: real time between ticks
        feed: change feed passed to the controller
        enabled: when False, ensure() is a no-op
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: float = 60.0,
        feed: Optional[ChangeFeed] = None,
        enabled: bool = True,
    ):
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._feed = feed
        self.enabled = enabled
        self._lock = threading.Lock()
        self._running: Dict[TickerKey, threading.Event] = {}

    def ensure(self, kind: MatchKind, match_id: int) -> bool:
        """Start ticking a match unless it already is. Returns True if a thread was started."""
        if not self.enabled:
            return False

        key = (kind.name, match_id)
        with self._lock:
            if key in self._running:
                return False
            stop = threading.Event()
            self._running[key] = stop

        thread = threading.Thread(
            target=self._run,
            args=(kind, match_id, stop),
            name=f"ticker-{kind.name}-{match_id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Clock started for {kind.name} match {match_id}")
        return True

    def cancel(self, kind: MatchKind, match_id: int) -> bool:
        """Stop a match's clock. Returns True if one was running."""
        with self._lock:
            stop = self._running.pop((kind.name, match_id), None)
        if stop is None:
            return False
        stop.set()
        logger.info(f"Clock cancelled for {kind.name} match {match_id}")
        return True

    def stop_all(self) -> None:
        with self._lock:
            events = list(self._running.values())
            self._running.clear()
        for stop in events:
            stop.set()

    def active(self) -> List[TickerKey]:
        with self._lock:
            return sorted(self._running.keys())

    def resume(self, db: Session) -> int:
        """Start clocks for every match already live (after a restart)."""
        started = 0
        for kind in KINDS.values():
            rows = db.query(kind.model.id).filter(kind.model.status == MatchStatus.LIVE.value).all()
            for (match_id,) in rows:
                if self.ensure(kind, match_id):
                    started += 1
        return started

    def _run(self, kind: MatchKind, match_id: int, stop: threading.Event) -> None:
        try:
            while not stop.wait(self._interval):
                try:
                    minute = self.step(kind, match_id)
                except SQLAlchemyError:
                    # Logged by the controller; try again next minute
                    continue
                if minute is None:
                    break
        finally:
            with self._lock:
                if self._running.get((kind.name, match_id)) is stop:
                    del self._running[(kind.name, match_id)]
            logger.debug(f"Clock thread for {kind.name} match {match_id} exited")

    def step(self, kind: MatchKind, match_id: int) -> Optional[int]:
        """Run one tick in a fresh session. None means the match is gone or no longer live."""
        db = self._session_factory()
        try:
            return MatchLifecycleController(db, feed=self._feed).tick(kind, match_id)
        finally:
            db.close()

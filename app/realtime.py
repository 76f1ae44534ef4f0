"""
In-process change feed.

Every committed insert/update/delete is published here. Views either register
a callback per table or poll `since()` and refetch their queries wholesale when
anything they watch has changed.
"""
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Deque, Dict, Iterable, List, Optional

logger = logging.getLogger("realtime")

ALL_TABLES = "*"
ACTIONS = ("insert", "update", "delete")


@dataclass
class Change:
    """A single change notification."""
    seq: int
    table: str
    action: str  # "insert", "update" or "delete"
    row_id: Optional[int]
    at: str  # ISO timestamp

    def to_dict(self) -> dict:
        return asdict(self)


Callback = Callable[[Change], None]


class ChangeFeed:
    """
    Thread-safe publish/subscribe hub with a bounded replay buffer.
    """

    def __init__(self, max_size: int = 500):
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._latest = 0
        self._buffer: Deque[Change] = deque(maxlen=max_size)
        self._subscribers: Dict[str, List[Callback]] = {}

    @property
    def latest(self) -> int:
        return self._latest

    def subscribe(self, table: str, callback: Callback) -> Callable[[], None]:
        """
        Register a callback for changes to `table` ("*" for every table).

        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, table: str, action: str, row_id: Optional[int] = None) -> Change:
        """Record a change and notify subscribers of that table."""
        if action not in ACTIONS:
            raise ValueError(f"Unknown change action: {action}")

        with self._lock:
            change = Change(
                seq=next(self._seq),
                table=table,
                action=action,
                row_id=row_id,
                at=datetime.utcnow().isoformat() + "Z",
            )
            self._buffer.append(change)
            self._latest = change.seq
            callbacks = list(self._subscribers.get(table, [])) + list(self._subscribers.get(ALL_TABLES, []))

        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception(f"Subscriber failed for {table}/{action}")

        logger.debug(f"Published change #{change.seq}: {table} {action} {row_id}")
        return change

    def since(self, seq: int = 0, tables: Optional[Iterable[str]] = None) -> List[Change]:
        """Buffered changes newer than `seq`, optionally limited to some tables."""
        wanted = set(tables) if tables else None
        with self._lock:
            return [
                c for c in self._buffer
                if c.seq > seq and (wanted is None or c.table in wanted)
            ]


_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Get the process-wide change feed."""
    global _feed
    if _feed is None:
        from config.settings import settings
        _feed = ChangeFeed(max_size=settings.change_feed_size)
    return _feed

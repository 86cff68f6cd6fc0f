"""
Row change notifications.

Changes to events, branches, evidence and investigation logs are collected
while a session flushes and published to subscribers of the owning event
once the transaction commits. Rolled-back changes are dropped. Subscribers
only learn *that* something changed; they are expected to refetch.

Commits happen on worker threads. A subscription bound to an event loop is
fed through `call_soon_threadsafe`, so a stream waiting on it holds no thread.
"""
import asyncio
import logging
import threading
from typing import Dict, List, Optional

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

from timelineforge.storage.models.branch import Branch
from timelineforge.storage.models.event import Event
from timelineforge.storage.models.evidence import Evidence
from timelineforge.storage.models.investigation_log import InvestigationLog

logger = logging.getLogger(__name__)

_PENDING_KEY = "timelineforge_pending_changes"
_TRACKED = (Event, Branch, Evidence, InvestigationLog)


class Subscription:
    """One subscriber's queue of changes for a single event."""

    def __init__(
        self,
        event_id: str,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        max_queue_size: int = 1000,
    ):
        self.event_id = event_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._loop = loop

    def deliver(self, change: dict) -> None:
        if self._loop is None:
            self._offer(change)
            return
        try:
            self._loop.call_soon_threadsafe(self._offer, change)
        except RuntimeError:
            # Loop already closed; the stream is gone.
            logger.debug("Dropping change for closed stream on event %s", self.event_id)

    def _offer(self, change: dict) -> None:
        try:
            self.queue.put_nowait(change)
        except asyncio.QueueFull:
            # A stalled client only needs one signal to refetch.
            logger.warning("Change feed queue full for event %s", self.event_id)

    async def next_change(self, timeout: float) -> Optional[dict]:
        """Wait up to `timeout` seconds; None when nothing arrived."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> dict:
        return self.queue.get_nowait()

    def empty(self) -> bool:
        return self.queue.empty()


class ChangeFeed:
    """Fan-out of committed row changes, keyed by event id."""

    def __init__(self, max_queue_size: int = 1000):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._max_queue_size = max_queue_size

    def subscribe(self, event_id, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        subscription = Subscription(str(event_id), loop=loop, max_queue_size=self._max_queue_size)
        with self._lock:
            self._subscribers.setdefault(subscription.event_id, []).append(subscription)
        return subscription

    def unsubscribe(self, event_id, subscription: Subscription) -> None:
        event_id = str(event_id)
        with self._lock:
            subscribers = self._subscribers.get(event_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(event_id, None)

    def subscriber_count(self, event_id) -> int:
        with self._lock:
            return len(self._subscribers.get(str(event_id), []))

    def publish(self, change: dict) -> None:
        with self._lock:
            targets = list(self._subscribers.get(str(change["event_id"]), []))
        for subscription in targets:
            subscription.deliver(change)


change_feed = ChangeFeed()


def _event_id_for(obj) -> Optional[str]:
    if isinstance(obj, Event):
        return obj.id
    return getattr(obj, "event_id", None)


def _record(session: Session, obj, change_type: str) -> None:
    if not isinstance(obj, _TRACKED):
        return
    event_id = _event_id_for(obj)
    if event_id is None:
        return
    session.info.setdefault(_PENDING_KEY, []).append({
        "table": obj.__tablename__,
        "type": change_type,
        "id": str(obj.id),
        "event_id": str(event_id),
    })


def _after_flush(session: Session, flush_context) -> None:
    for obj in session.new:
        _record(session, obj, "INSERT")
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            _record(session, obj, "UPDATE")
    for obj in session.deleted:
        _record(session, obj, "DELETE")


def _after_commit(session: Session) -> None:
    for change in session.info.pop(_PENDING_KEY, []):
        change_feed.publish(change)


def _after_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install(session_cls=Session) -> None:
    """Attach the feed to every session of `session_cls`."""
    if sa_event.contains(session_cls, "after_flush", _after_flush):
        return
    sa_event.listen(session_cls, "after_flush", _after_flush)
    sa_event.listen(session_cls, "after_commit", _after_commit)
    sa_event.listen(session_cls, "after_rollback", _after_rollback)

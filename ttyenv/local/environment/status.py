import logging
import threading
from typing import Callable, List, Optional
from ttyenv.local.environment.messages import StatusEvent

log = logging.getLogger(__name__)

Subscriber = Callable[[StatusEvent], None]


class StatusTracker:
    """
    Broadcasts status events to push subscribers.
    Only the most recent event is remembered; there is no replay beyond it.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._last: Optional[StatusEvent] = None

    @property
    def last(self) -> Optional[StatusEvent]:
        """The last event written, or None if nothing was published yet."""
        with self._lock:
            return self._last

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def write_message(self, event: StatusEvent) -> None:
        """
        Records the event and delivers it to every subscriber.
        A failing subscriber is logged and does not prevent delivery to the others.

        :param event: The status snapshot to publish.
        """
        with self._lock:
            self._last = event
            subscribers = list(self._subscribers)

        log.debug(f"Publishing status event: {event.to_dict()}")
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                log.error(f"Status subscriber {subscriber!r} failed: {e}", exc_info=True)

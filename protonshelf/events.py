"""Fire-and-forget notification fan-out.

Each subscriber owns a bounded queue. ``publish`` never blocks: when a
subscriber falls behind, the event is dropped for that subscriber only.
"""
import logging
import queue
import threading
from typing import Any, Dict, List, Optional

from .utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

class Subscription:
    def __init__(self, bus: "EventBus", maxsize: int):
        self._bus = bus
        self.queue: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=maxsize)

    def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Dict[str, Any]]:
        items = []
        while True:
            try:
                items.append(self.queue.get_nowait())
            except queue.Empty:
                return items

    def close(self) -> None:
        self._bus.unsubscribe(self)

class EventBus:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subs: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.queue_size)
        with self._lock:
            self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def publish(self, event_type: str, **payload: Any) -> Dict[str, Any]:
        event = {"type": event_type, **payload, "timestamp": now_ms()}
        with self._lock:
            subs = list(self._subs)
        for sub in subs:
            try:
                sub.queue.put_nowait(event)
            except queue.Full:
                logger.debug("Subscriber queue full, dropping %s event", event_type)
        return event

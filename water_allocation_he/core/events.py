"""
Lifecycle notifications.

Emitted once per successful transition; delivery is best-effort and
synchronous on the mutating thread.
"""

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List


class EventType(str, Enum):
    REQUEST_SUBMITTED = "request_submitted"
    DECRYPTION_REQUESTED = "decryption_requested"
    REQUEST_DECRYPTED = "request_decrypted"
    ZONE_ALLOCATION_UPDATED = "zone_allocation_updated"
    ZONE_DECRYPTION_REQUESTED = "zone_decryption_requested"
    ZONE_TOTAL_REVEALED = "zone_total_revealed"
    DECRYPTION_CANCELLED = "decryption_cancelled"


@dataclass
class AllocationEvent:
    event_type: EventType
    payload: Dict[str, Any]
    sequence_id: int
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        d = asdict(self)
        d['event_type'] = self.event_type.value
        return d


Listener = Callable[[AllocationEvent], None]


class EventDispatcher:
    """Fan-out of lifecycle events to subscribers, plus a bounded history"""

    def __init__(self, history_size: int = 500):
        self._listeners: List[Listener] = []
        self._history: List[AllocationEvent] = []
        self._history_size = history_size
        self._sequence = 0
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: EventType, **payload) -> AllocationEvent:
        with self._lock:
            self._sequence += 1
            event = AllocationEvent(event_type, payload, self._sequence)
            self._history.append(event)
            del self._history[:-self._history_size]
            listeners = list(self._listeners)

        for listener in listeners:
            listener(event)
        return event

    def history(self, limit: int = 20) -> List[AllocationEvent]:
        return self._history[-limit:]

"""
Oracle Correlator
=================
Maps oracle-issued callback ids back to the domain object that asked for
the decryption.

Each entry is tagged with the flow that created it (request or zone), so a
zone-name hash can never be resolved as a request id or vice versa.

Entries are append-only: the (flow, domain_id) of a callback id is never
rewritten. Only the status moves PENDING -> RESOLVED or PENDING -> CANCELLED.
Single-use of request callbacks is NOT enforced here; the request ledger's
processed flag does that.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .exceptions import DuplicateCallback, InvalidRequest


class CorrelationFlow(str, Enum):
    REQUEST = "request"
    ZONE = "zone"


class CorrelationStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


@dataclass
class PendingCorrelation:
    callback_id: str
    flow: CorrelationFlow
    domain_id: int
    registered_at: float
    status: CorrelationStatus = CorrelationStatus.PENDING

    def to_dict(self) -> dict:
        return {
            'callback_id': self.callback_id,
            'flow': self.flow.value,
            # zone hashes exceed JSON-safe integer range
            'domain_id': str(self.domain_id),
            'registered_at': self.registered_at,
            'status': self.status.value
        }


class OracleCorrelator:
    """callback_id -> (flow, domain_id) table"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, PendingCorrelation] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def register(self, callback_id: str, flow: CorrelationFlow, domain_id: int) -> PendingCorrelation:
        """
        Raises:
            DuplicateCallback: If the oracle reused an id
        """
        with self._lock:
            if callback_id in self._entries:
                raise DuplicateCallback(f"Callback id already registered: {callback_id}")
            entry = PendingCorrelation(callback_id, flow, domain_id, self._clock())
            self._entries[callback_id] = entry
            return entry

    def lookup(self, callback_id: str, flow: CorrelationFlow) -> PendingCorrelation:
        """
        Find the live entry for a callback.

        Raises:
            InvalidRequest: Unknown id, cancelled entry, or entry of another flow
        """
        entry = self._entries.get(callback_id)
        if entry is None:
            raise InvalidRequest(f"Unknown callback id: {callback_id}")
        if entry.flow != flow:
            raise InvalidRequest(f"Callback id {callback_id} does not belong to the {flow.value} flow")
        if entry.status == CorrelationStatus.CANCELLED:
            raise InvalidRequest(f"Callback id {callback_id} was cancelled")
        return entry

    def resolve(self, callback_id: str, flow: CorrelationFlow) -> int:
        return self.lookup(callback_id, flow).domain_id

    def mark_resolved(self, callback_id: str):
        self._set_status(callback_id, CorrelationStatus.RESOLVED)

    def mark_cancelled(self, callback_id: str):
        self._set_status(callback_id, CorrelationStatus.CANCELLED)

    def _set_status(self, callback_id: str, status: CorrelationStatus):
        with self._lock:
            entry = self._entries.get(callback_id)
            if entry is None:
                raise InvalidRequest(f"Unknown callback id: {callback_id}")
            entry.status = status

    def get(self, callback_id: str) -> Optional[PendingCorrelation]:
        return self._entries.get(callback_id)

    def pending(self, flow: Optional[CorrelationFlow] = None) -> List[PendingCorrelation]:
        return [
            e for e in self._entries.values()
            if e.status == CorrelationStatus.PENDING and (flow is None or e.flow == flow)
        ]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, callback_id: str) -> bool:
        return callback_id in self._entries

"""
Request Ledger
==============
Record of submitted encrypted water requests and their revealed results.

Ids are sequential from 1; id 0 is reserved and never issued. A request
is immutable once created; its DecryptedResult starts at (0, 0, False)
and is written exactly once, by the oracle-verified resolution.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .events import EventDispatcher, EventType
from .exceptions import AlreadyProcessed, DecryptionPending, NotFound
from .fhe_engine import EncryptedValue

NOT_FOUND_ID = 0


class RequestState(str, Enum):
    CREATED = "created"
    DECRYPTION_REQUESTED = "decryption_requested"
    DECRYPTED = "decrypted"


@dataclass(frozen=True)
class Request:
    id: int
    encrypted_demand: EncryptedValue
    encrypted_priority: EncryptedValue
    submitted_at: float
    submitter: str
    zone: str

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'encrypted_demand': self.encrypted_demand.to_dict(),
            'encrypted_priority': self.encrypted_priority.to_dict(),
            'submitted_at': self.submitted_at,
            'submitted_at_iso': datetime.fromtimestamp(self.submitted_at).isoformat(),
            'submitter': self.submitter,
            'zone': self.zone
        }


@dataclass
class DecryptedResult:
    demand: int = 0
    priority: int = 0
    processed: bool = False

    def as_tuple(self) -> Tuple[int, int, bool]:
        return self.demand, self.priority, self.processed


class RequestLedger:
    """
    Sequential store of requests.

    Mutators are called by the coordinator AFTER it validated every
    precondition; they re-check only the invariants they own.
    """

    def __init__(self,
                 events: Optional[EventDispatcher] = None,
                 clock: Callable[[], float] = time.time):
        self._requests: Dict[int, Request] = {}
        self._results: Dict[int, DecryptedResult] = {}
        self._states: Dict[int, RequestState] = {}
        self._callbacks: Dict[int, str] = {}
        self._next_id = NOT_FOUND_ID + 1
        self._lock = threading.Lock()
        self.events = events
        self._clock = clock

    def submit(self,
               encrypted_demand: EncryptedValue,
               encrypted_priority: EncryptedValue,
               submitter: str,
               zone: str) -> Request:
        """
        Store a new request with a zero-valued, unprocessed result.

        Ciphertexts are opaque; no validation of their content is possible.
        """
        with self._lock:
            request = Request(
                id=self._next_id,
                encrypted_demand=encrypted_demand,
                encrypted_priority=encrypted_priority,
                submitted_at=self._clock(),
                submitter=submitter,
                zone=zone
            )
            self._next_id += 1
            self._requests[request.id] = request
            self._results[request.id] = DecryptedResult()
            self._states[request.id] = RequestState.CREATED

        if self.events:
            self.events.emit(EventType.REQUEST_SUBMITTED,
                             request_id=request.id, timestamp=request.submitted_at)
        return request

    def read(self, request_id: int) -> Tuple[int, int, bool]:
        """
        Returns:
            (demand, priority, processed); (0, 0, False) until resolved

        Raises:
            NotFound: For ids never issued
        """
        return self._get_result(request_id).as_tuple()

    def get_request(self, request_id: int) -> Request:
        if request_id not in self._requests:
            raise NotFound(f"Request {request_id} not found")
        return self._requests[request_id]

    def _get_result(self, request_id: int) -> DecryptedResult:
        if request_id not in self._results:
            raise NotFound(f"Request {request_id} not found")
        return self._results[request_id]

    def state(self, request_id: int) -> RequestState:
        self.get_request(request_id)
        return self._states[request_id]

    def is_processed(self, request_id: int) -> bool:
        return self._get_result(request_id).processed

    def pending_callback(self, request_id: int) -> Optional[str]:
        """Callback id of the in-flight decryption, if any"""
        return self._callbacks.get(request_id)

    # ==================== TRANSITIONS ====================

    def mark_decryption_requested(self, request_id: int, callback_id: str):
        with self._lock:
            self._check_open(request_id)
            self._states[request_id] = RequestState.DECRYPTION_REQUESTED
            self._callbacks[request_id] = callback_id

    def mark_decrypted(self, request_id: int, demand: int, priority: int):
        with self._lock:
            result = self._get_result(request_id)
            if result.processed:
                raise AlreadyProcessed(f"Request {request_id} already processed")
            result.demand = demand
            result.priority = priority
            result.processed = True
            self._states[request_id] = RequestState.DECRYPTED
            self._callbacks.pop(request_id, None)

    def reset_to_created(self, request_id: int):
        """Re-arm a request whose decryption was cancelled"""
        with self._lock:
            if self._get_result(request_id).processed:
                raise AlreadyProcessed(f"Request {request_id} already processed")
            self._states[request_id] = RequestState.CREATED
            self._callbacks.pop(request_id, None)

    def _check_open(self, request_id: int):
        if self._get_result(request_id).processed:
            raise AlreadyProcessed(f"Request {request_id} already processed")
        if self._states[request_id] == RequestState.DECRYPTION_REQUESTED:
            raise DecryptionPending(f"Request {request_id} already has a decryption in flight")

    def check_open(self, request_id: int):
        """
        Raises:
            NotFound, AlreadyProcessed, DecryptionPending
        """
        with self._lock:
            self._check_open(request_id)

    # ==================== QUERIES ====================

    def list_requests(self) -> List[Request]:
        """Newest first"""
        return sorted(self._requests.values(), key=lambda r: (r.submitted_at, r.id), reverse=True)

    def count_by_state(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in RequestState}
        for state in self._states.values():
            counts[state.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._requests)

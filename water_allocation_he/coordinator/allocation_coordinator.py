"""
Allocation Coordinator
======================
Orchestrates the encrypted water-request lifecycle.

The coordinator is the UNTRUSTED party that:
- Records encrypted requests from farmers
- Asks the decryption oracle to reveal a request or a zone total
- Accepts oracle callbacks only after the proof verifies
- Merges each revealed demand into its zone's encrypted total, exactly once

Request lifecycle:
    CREATED -> DECRYPTION_REQUESTED -> DECRYPTED
    DECRYPTION_REQUESTED -> CREATED only via cancel after the timeout

Every precondition is checked before the first mutation; a failing
operation leaves ledger, correlator and accumulator untouched.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import AllocationConfig
from ..core.access_policy import AccessPolicy, CredentialRegistry
from ..core.allocation_accumulator import AllocationAccumulator, ZoneReveal, zone_hash
from ..core.correlator import CorrelationFlow, CorrelationStatus, OracleCorrelator
from ..core.events import EventDispatcher, EventType
from ..core.exceptions import (
    AllocationError,
    AlreadyProcessed,
    DecryptionNotExpired,
    DecryptionPending,
    InvalidProof,
    InvalidRequest,
)
from ..core.fhe_engine import CiphertextAlgebra, EncryptedValue, PlaintextMirrorAlgebra
from ..core.oracle_gateway import (
    RESOLVE_REQUEST_HANDLER,
    RESOLVE_ZONE_HANDLER,
    DecryptionOracleGateway,
    decode_cleartext,
)
from ..core.oracle_signing import LocalDecryptionOracle
from ..core.request_ledger import Request, RequestLedger, RequestState
from ..core.security_logger import SecurityLogger


class AllocationCoordinator:
    """
    Central component of the allocation core.

    CRITICAL: holds only the PUBLIC algebra. Plaintext enters solely through
    oracle callbacks whose proofs the gateway accepted.
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 gateway: DecryptionOracleGateway,
                 config: Optional[AllocationConfig] = None,
                 security_logger: Optional[SecurityLogger] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            algebra: Public ciphertext algebra (NO secret key!)
            gateway: Gateway to the decryption oracle
            config: Runtime configuration
            security_logger: Security audit logger
            clock: Time source for timestamps and decryption expiry
        """
        if algebra.is_private():
            raise ValueError("Coordinator has secret key - security violation!")

        self.config = config or AllocationConfig()
        self.algebra = algebra
        self.gateway = gateway
        self.logger = security_logger
        self._clock = clock

        self.events = EventDispatcher()
        self.policy = AccessPolicy(
            oracle_identity=gateway.oracle_identity,
            zone_administrators=frozenset(self.config.zone_administrators),
            credentials=CredentialRegistry(self.config.caller_tokens)
        )
        self.ledger = RequestLedger(self.events, clock)
        self.correlator = OracleCorrelator(clock)
        self.accumulator = AllocationAccumulator(algebra, self.events, security_logger, clock)

        # contribution count at the time each zone reveal was requested
        self._zone_snapshots: Dict[str, int] = {}
        # zone -> callback id of its in-flight reveal (at most one per zone)
        self._zone_inflight: Dict[str, str] = {}
        self._lock = threading.RLock()

    @contextmanager
    def _audited(self, entity: str, action: str):
        try:
            yield
        except AllocationError as e:
            if self.logger:
                self.logger.log_rejection(entity, action, e)
            raise

    # ==================== CREDENTIALS ====================

    def enroll(self, caller: str, token: Optional[str] = None) -> Optional[str]:
        """
        Authenticate a known caller, or issue a trust token on first contact.

        Returns:
            The new token for a first-time caller, None otherwise
        """
        with self._audited(caller, 'enroll'):
            issued = self.policy.enroll(caller, token)

        if issued and self.logger:
            self.logger.log_enrolled(caller)
        return issued

    def authenticate(self, caller: str, token: Optional[str]):
        """
        Raises:
            Unauthorized: Unknown caller or wrong token
        """
        with self._audited(caller, 'authenticate'):
            self.policy.authenticate(caller, token)

    # ==================== SUBMISSION ====================

    def submit_request(self,
                       caller: str,
                       encrypted_demand: EncryptedValue,
                       encrypted_priority: EncryptedValue,
                       zone: Optional[str] = None) -> int:
        """
        Record an encrypted request.

        Args:
            caller: Submitting farmer; the only party allowed to trigger decryption
            zone: Target zone; defaults to the configured target zone

        Returns:
            Sequential request id (>= 1)
        """
        zone = zone or self.config.target_zone
        for handle in (encrypted_demand, encrypted_priority):
            if not self.algebra.is_initialized(handle):
                raise ValueError("Encrypted fields must be initialized ciphertexts")

        with self._lock:
            request = self.ledger.submit(encrypted_demand, encrypted_priority, caller, zone)

        if self.logger:
            self.logger.log_submit(caller, request.id, zone)
        return request.id

    # ==================== REQUEST DECRYPTION FLOW ====================

    def request_decryption(self, caller: str, request_id: int) -> str:
        """
        CREATED -> DECRYPTION_REQUESTED

        Raises:
            NotFound, Unauthorized, AlreadyProcessed, DecryptionPending,
            DuplicateCallback

        Returns:
            Oracle-issued callback id
        """
        with self._audited(caller, 'request_decryption'), self._lock:
            request = self.ledger.get_request(request_id)
            self.policy.require_submitter(caller, request.submitter)
            self.ledger.check_open(request_id)

            callback_id = self.gateway.request_decryption(
                [request.encrypted_demand, request.encrypted_priority],
                RESOLVE_REQUEST_HANDLER
            )
            self.correlator.register(callback_id, CorrelationFlow.REQUEST, request_id)
            self.ledger.mark_decryption_requested(request_id, callback_id)

        if self.logger:
            self.logger.log_decryption_requested(request_id, callback_id)
        self.events.emit(EventType.DECRYPTION_REQUESTED,
                         request_id=request_id, callback_id=callback_id)
        return callback_id

    def resolve_request_decryption(self,
                                   caller: str,
                                   callback_id: str,
                                   cleartext: bytes,
                                   proof: bytes) -> Tuple[int, int, bool]:
        """
        DECRYPTION_REQUESTED -> DECRYPTED (oracle entry point)

        Preconditions, in order: caller is the oracle, callback resolves,
        request unprocessed, proof accepted, cleartext is two words.

        Returns:
            (demand, priority, True)
        """
        with self._audited(caller, 'resolve_request_decryption'):
            self.policy.require_oracle(caller)

            with self._lock:
                request_id = self.correlator.resolve(callback_id, CorrelationFlow.REQUEST)
                if self.ledger.is_processed(request_id):
                    raise AlreadyProcessed(f"Request {request_id} already processed")
                if not self.gateway.verify(callback_id, cleartext, proof):
                    raise InvalidProof(f"Oracle proof rejected for callback {callback_id}")
                demand, priority = decode_cleartext(cleartext, 2)

                request = self.ledger.get_request(request_id)
                amount = self.algebra.encrypt(demand)

                self.ledger.mark_decrypted(request_id, demand, priority)
                self.correlator.mark_resolved(callback_id)
                self.accumulator.contribute(request.zone, amount)

        if self.logger:
            self.logger.log_request_resolved(request_id, callback_id)
        self.events.emit(EventType.REQUEST_DECRYPTED,
                         request_id=request_id, zone=request.zone)
        return demand, priority, True

    def cancel_decryption(self, caller: str, request_id: int) -> str:
        """
        DECRYPTION_REQUESTED -> CREATED once the timeout has elapsed.

        The cancelled callback id stays in the correlator as CANCELLED, so
        a late oracle answer fails with InvalidRequest. The oracle job is
        withdrawn as well.

        Returns:
            The cancelled callback id
        """
        with self._audited(caller, 'cancel_decryption'), self._lock:
            request = self.ledger.get_request(request_id)
            self.policy.require_submitter(caller, request.submitter)
            if self.ledger.is_processed(request_id):
                raise AlreadyProcessed(f"Request {request_id} already processed")

            callback_id = self.ledger.pending_callback(request_id)
            if callback_id is None:
                raise InvalidRequest(f"Request {request_id} has no decryption in flight")

            timeout = self.config.decryption_timeout_seconds
            if timeout is None:
                raise DecryptionNotExpired("In-flight decryptions cannot be cancelled")
            elapsed = self._clock() - self.correlator.get(callback_id).registered_at
            if elapsed < timeout:
                raise DecryptionNotExpired(
                    f"Decryption for request {request_id} can be cancelled in "
                    f"{timeout - elapsed:.0f}s"
                )

            self.correlator.mark_cancelled(callback_id)
            self.ledger.reset_to_created(request_id)
            self.gateway.cancel(callback_id)

        if self.logger:
            self.logger.log_cancelled(request_id, callback_id)
        self.events.emit(EventType.DECRYPTION_CANCELLED,
                         request_id=request_id, callback_id=callback_id)
        return callback_id

    def stale_decryptions(self) -> List[int]:
        """Request ids whose in-flight decryption outlived the timeout"""
        timeout = self.config.decryption_timeout_seconds
        if timeout is None:
            return []
        now = self._clock()
        return [
            entry.domain_id
            for entry in self.correlator.pending(CorrelationFlow.REQUEST)
            if now - entry.registered_at >= timeout
        ]

    # ==================== ZONE DECRYPTION FLOW ====================

    def request_zone_decryption(self, caller: str, zone: str) -> str:
        """
        Ask the oracle to reveal a zone's current total.

        Reveals older than the decryption timeout are expired first; a
        zone then has at most one reveal in flight.

        Raises:
            Unauthorized, ZoneNotFound, DecryptionPending, DuplicateCallback
        """
        with self._audited(caller, 'request_zone_decryption'):
            self.policy.require_zone_administrator(caller)
            self.expire_zone_decryptions()

            with self._lock:
                encrypted_total = self.accumulator.read_encrypted(zone)
                if zone in self._zone_inflight:
                    raise DecryptionPending(
                        f"Zone '{zone}' already has a reveal in flight "
                        f"({self._zone_inflight[zone]})"
                    )
                callback_id = self.gateway.request_decryption([encrypted_total], RESOLVE_ZONE_HANDLER)
                self.correlator.register(callback_id, CorrelationFlow.ZONE, zone_hash(zone))
                self._zone_snapshots[callback_id] = self.accumulator.contribution_count(zone)
                self._zone_inflight[zone] = callback_id

        if self.logger:
            self.logger.log_zone_decryption_requested(zone, callback_id)
        self.events.emit(EventType.ZONE_DECRYPTION_REQUESTED, zone=zone, callback_id=callback_id)
        return callback_id

    def expire_zone_decryptions(self) -> List[str]:
        """
        Cancel zone reveals that outlived the decryption timeout.

        Returns:
            Expired callback ids
        """
        timeout = self.config.decryption_timeout_seconds
        if timeout is None:
            return []

        with self._lock:
            now = self._clock()
            expired = [
                (zone, callback_id)
                for zone, callback_id in self._zone_inflight.items()
                if now - self.correlator.get(callback_id).registered_at >= timeout
            ]
            for zone, callback_id in expired:
                del self._zone_inflight[zone]
                self._zone_snapshots.pop(callback_id, None)
                self.correlator.mark_cancelled(callback_id)
                self.gateway.cancel(callback_id)

        for zone, callback_id in expired:
            if self.logger:
                self.logger.log_zone_decryption_expired(zone, callback_id)
            self.events.emit(EventType.DECRYPTION_CANCELLED, zone=zone, callback_id=callback_id)
        return [callback_id for _, callback_id in expired]

    def resolve_zone_decryption(self,
                                caller: str,
                                callback_id: str,
                                cleartext: bytes,
                                proof: bytes) -> ZoneReveal:
        """
        Oracle entry point for zone reveals. The revealed total is
        persisted and served by get_revealed_allocation().
        """
        with self._audited(caller, 'resolve_zone_decryption'):
            self.policy.require_oracle(caller)

            with self._lock:
                entry = self.correlator.lookup(callback_id, CorrelationFlow.ZONE)
                if entry.status == CorrelationStatus.RESOLVED:
                    raise AlreadyProcessed(f"Zone callback {callback_id} already processed")
                zone = self.accumulator.zone_for_hash(entry.domain_id)
                if not self.gateway.verify(callback_id, cleartext, proof):
                    raise InvalidProof(f"Oracle proof rejected for callback {callback_id}")
                (total,) = decode_cleartext(cleartext, 1)

                reveal = self.accumulator.record_reveal(
                    zone, total, callback_id, self._zone_snapshots.pop(callback_id, None)
                )
                self.correlator.mark_resolved(callback_id)
                if self._zone_inflight.get(zone) == callback_id:
                    del self._zone_inflight[zone]

        if self.logger:
            self.logger.log_zone_revealed(zone, callback_id)
        self.events.emit(EventType.ZONE_TOTAL_REVEALED, zone=zone, callback_id=callback_id)
        return reveal

    # ==================== READ QUERIES ====================

    def get_decrypted_request(self, request_id: int) -> Tuple[int, int, bool]:
        return self.ledger.read(request_id)

    def get_request(self, request_id: int) -> Request:
        return self.ledger.get_request(request_id)

    def get_request_state(self, request_id: int) -> RequestState:
        return self.ledger.state(request_id)

    def list_requests(self) -> List[Request]:
        return self.ledger.list_requests()

    def get_encrypted_allocation(self, zone: str) -> EncryptedValue:
        return self.accumulator.read_encrypted(zone)

    def get_revealed_allocation(self, zone: str) -> ZoneReveal:
        return self.accumulator.revealed_total(zone)

    def is_available(self) -> bool:
        """Ready to accept requests: public algebra matching the gateway's"""
        return (
            not self.algebra.is_private()
            and self.gateway.algebra.scheme == self.algebra.scheme
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            'requests': len(self.ledger),
            'requests_by_state': self.ledger.count_by_state(),
            'zones': len(self.accumulator.zones()),
            'correlations': len(self.correlator),
            'pending_correlations': len(self.correlator.pending()),
            'zone_reveals_in_flight': len(self._zone_inflight),
            'stale_decryptions': len(self.stale_decryptions()),
            'gateway': self.gateway.get_stats(),
            'target_zone': self.config.target_zone,
            'scheme': self.algebra.scheme,
            'can_decrypt': self.algebra.is_private()
        }

    def get_history(self, limit: int = 20) -> List[Dict]:
        return [e.to_dict() for e in self.events.history(limit)]

    def verify_security(self) -> Dict[str, Any]:
        return {
            'coordinator_has_secret_key': self.algebra.is_private(),
            'security_audit': (
                self.logger.get_coordinator_summary()
                if self.logger else None
            ),
            'privacy_preserved': (
                not self.algebra.is_private()
                and (self.logger is None or self.logger.verify_no_violations())
            )
        }

    # ==================== WIRING ====================

    def bind_local_oracle(self, oracle: LocalDecryptionOracle):
        """Route the oracle's callbacks to the resolution entry points"""
        oracle.bind(
            RESOLVE_REQUEST_HANDLER,
            lambda cid, ct, pr: self.resolve_request_decryption(oracle.identity, cid, ct, pr)
        )
        oracle.bind(
            RESOLVE_ZONE_HANDLER,
            lambda cid, ct, pr: self.resolve_zone_decryption(oracle.identity, cid, ct, pr)
        )


def build_local_system(config: Optional[AllocationConfig] = None,
                       private_algebra: Optional[CiphertextAlgebra] = None,
                       security_logger: Optional[SecurityLogger] = None,
                       clock: Callable[[], float] = time.time
                       ) -> Tuple[AllocationCoordinator, LocalDecryptionOracle]:
    """
    Wire a coordinator to an in-process signing oracle.

    The oracle keeps the private algebra; the coordinator and gateway get
    its public counterpart.
    """
    config = config or AllocationConfig()

    if private_algebra is None:
        if config.backend == "tenseal":
            from ..core.tenseal_backend import TenSEALAlgebra
            private_algebra = TenSEALAlgebra()
        else:
            private_algebra = PlaintextMirrorAlgebra()

    public_algebra = private_algebra.public()
    oracle = LocalDecryptionOracle(
        private_algebra, identity=config.oracle_identity, security_logger=security_logger
    )
    gateway = DecryptionOracleGateway(oracle, public_algebra, security_logger)
    coordinator = AllocationCoordinator(public_algebra, gateway, config, security_logger, clock)
    coordinator.bind_local_oracle(oracle)
    return coordinator, oracle

"""
Security Logger for Encrypted Water Allocation
===============================================
Audit trail proving the coordinator only handles ciphertext.

Every lifecycle step is logged with the entity that performed it and the
classification of data it touched. The coordinator may see plaintext in
exactly one place: the oracle-verified resolution of a decryption.
Any other coordinator entry involving plaintext is a security violation.
"""

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class DataType(Enum):
    """Classification of data handled in an operation"""
    CIPHERTEXT = "ciphertext"
    PLAINTEXT = "plaintext"
    PUBLIC_PARAM = "public_param"
    METADATA = "metadata"


class OperationType(Enum):
    """Lifecycle operations"""
    SUBMIT = "submit"
    REQUEST_DECRYPTION = "request_decryption"
    REQUEST_ZONE_DECRYPTION = "request_zone_decryption"
    VERIFY_PROOF = "verify_proof"
    RESOLVE = "resolve"
    REVEAL_ZONE = "reveal_zone"
    CONTRIBUTE = "contribute"
    CANCEL = "cancel"
    EXPIRE = "expire"
    ENROLL = "enroll"
    ORACLE_DECRYPT = "oracle_decrypt"
    REJECT = "reject"


# Plaintext reaches the coordinator only through a verified oracle answer
AUTHORIZED_PLAINTEXT_OPERATIONS = {
    OperationType.RESOLVE.value,
    OperationType.REVEAL_ZONE.value,
}

COORDINATOR = 'coordinator'
ORACLE = 'oracle'


@dataclass
class SecurityLogEntry:
    """Single security audit log entry"""
    timestamp: str
    entity: str
    operation: str
    data_types: List[str]
    is_safe: bool
    details: Dict[str, Any]
    sequence_id: int

    def to_dict(self) -> dict:
        return asdict(self)


class SecurityLogger:
    """
    Append-only audit log.

    Thread-safe; optionally persisted as JSON lines and reloaded on start.
    """

    def __init__(self, log_file: Optional[str] = None):
        """
        Args:
            log_file: Optional file path to persist logs
        """
        self._entries: List[SecurityLogEntry] = []
        self._lock = threading.Lock()
        self._sequence = 0
        self.log_file = Path(log_file) if log_file else None

        if self.log_file and self.log_file.exists():
            self._load_from_file()

    def log(self,
            entity: str,
            operation: OperationType,
            data_types: List[DataType],
            details: Dict[str, Any] = None) -> SecurityLogEntry:
        """
        Log a security-relevant operation.

        Args:
            entity: Who performed it ('participant:<id>', 'coordinator', 'oracle')
            operation: Type of operation performed
            data_types: Types of data involved
            details: Additional context

        Returns:
            The created log entry
        """
        with self._lock:
            self._sequence += 1

            is_safe = not (
                entity == COORDINATOR
                and DataType.PLAINTEXT in data_types
                and operation.value not in AUTHORIZED_PLAINTEXT_OPERATIONS
            )

            entry = SecurityLogEntry(
                timestamp=datetime.now().isoformat(),
                entity=entity,
                operation=operation.value,
                data_types=[dt.value for dt in data_types],
                is_safe=is_safe,
                details=details or {},
                sequence_id=self._sequence
            )
            self._entries.append(entry)

            if self.log_file:
                self._append_to_file(entry)

            return entry

    def log_submit(self, participant: str, request_id: int, zone: str) -> SecurityLogEntry:
        return self.log(
            entity=f"participant:{participant}",
            operation=OperationType.SUBMIT,
            data_types=[DataType.CIPHERTEXT, DataType.METADATA],
            details={'request_id': request_id, 'zone': zone}
        )

    def log_decryption_requested(self, request_id: int, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.REQUEST_DECRYPTION,
            data_types=[DataType.CIPHERTEXT],
            details={'request_id': request_id, 'callback_id': callback_id}
        )

    def log_zone_decryption_requested(self, zone: str, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.REQUEST_ZONE_DECRYPTION,
            data_types=[DataType.CIPHERTEXT, DataType.METADATA],
            details={'zone': zone, 'callback_id': callback_id}
        )

    def log_proof_verified(self, callback_id: str, accepted: bool) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.VERIFY_PROOF,
            data_types=[DataType.PUBLIC_PARAM],
            details={'callback_id': callback_id, 'accepted': accepted}
        )

    def log_request_resolved(self, request_id: int, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.RESOLVE,
            data_types=[DataType.PLAINTEXT, DataType.METADATA],
            details={'request_id': request_id, 'callback_id': callback_id, 'authorized': True}
        )

    def log_zone_revealed(self, zone: str, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.REVEAL_ZONE,
            data_types=[DataType.PLAINTEXT, DataType.METADATA],
            details={'zone': zone, 'callback_id': callback_id, 'authorized': True}
        )

    def log_contribution(self, zone: str, created: bool) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.CONTRIBUTE,
            data_types=[DataType.CIPHERTEXT],
            details={'zone': zone, 'zone_created': created, 'operation': 'homomorphic_sum'}
        )

    def log_cancelled(self, request_id: int, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.CANCEL,
            data_types=[DataType.METADATA],
            details={'request_id': request_id, 'callback_id': callback_id}
        )

    def log_zone_decryption_expired(self, zone: str, callback_id: str) -> SecurityLogEntry:
        return self.log(
            entity=COORDINATOR,
            operation=OperationType.EXPIRE,
            data_types=[DataType.METADATA],
            details={'zone': zone, 'callback_id': callback_id}
        )

    def log_enrolled(self, participant: str) -> SecurityLogEntry:
        return self.log(
            entity=f"participant:{participant}",
            operation=OperationType.ENROLL,
            data_types=[DataType.METADATA],
            details={'credential': 'issued'}
        )

    def log_oracle_decryption(self, callback_id: str, values: int, key_id: str) -> SecurityLogEntry:
        """Oracle-side decrypt and sign; the only place plaintext is produced"""
        return self.log(
            entity=ORACLE,
            operation=OperationType.ORACLE_DECRYPT,
            data_types=[DataType.CIPHERTEXT, DataType.PLAINTEXT],
            details={'callback_id': callback_id, 'values': values, 'signing_key': key_id}
        )

    def log_rejection(self, entity: str, action: str, error: Exception) -> SecurityLogEntry:
        return self.log(
            entity=entity,
            operation=OperationType.REJECT,
            data_types=[DataType.METADATA],
            details={'action': action, 'error': type(error).__name__, 'message': str(error)}
        )

    def get_all_entries(self) -> List[SecurityLogEntry]:
        return list(self._entries)

    def get_entries_for_entity(self, entity: str) -> List[SecurityLogEntry]:
        return [e for e in self._entries if e.entity == entity]

    def get_violations(self) -> List[SecurityLogEntry]:
        return [e for e in self._entries if not e.is_safe]

    def verify_no_violations(self) -> bool:
        return len(self.get_violations()) == 0

    def get_coordinator_summary(self) -> Dict[str, Any]:
        """
        Summary of coordinator operations for audit.

        Plaintext is expected only in oracle-verified resolutions.
        """
        coordinator_entries = self.get_entries_for_entity(COORDINATOR)
        unauthorized_plaintext = [
            e for e in coordinator_entries
            if 'plaintext' in e.data_types and e.operation not in AUTHORIZED_PLAINTEXT_OPERATIONS
        ]

        return {
            'total_operations': len(coordinator_entries),
            'authorized_reveals': len([
                e for e in coordinator_entries if e.operation in AUTHORIZED_PLAINTEXT_OPERATIONS
            ]),
            'rejections': len([e for e in self._entries if e.operation == OperationType.REJECT.value]),
            'violations': len(unauthorized_plaintext),
            'privacy_preserved': not unauthorized_plaintext
        }

    def generate_audit_report(self) -> Dict[str, Any]:
        summary = self.get_coordinator_summary()

        return {
            'report_generated': datetime.now().isoformat(),
            'total_log_entries': len(self._entries),
            'entities': sorted(set(e.entity for e in self._entries)),
            'coordinator_privacy_audit': summary,
            'security_violations': [e.to_dict() for e in self.get_violations()],
            'conclusion': (
                "PRIVACY PRESERVED: plaintext only revealed through verified oracle answers."
                if summary['privacy_preserved']
                else "PRIVACY VIOLATION: coordinator handled unverified plaintext!"
            )
        }

    def _append_to_file(self, entry: SecurityLogEntry):
        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry.to_dict()) + '\n')

    def _load_from_file(self):
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    data = json.loads(line)
                    self._entries.append(SecurityLogEntry(**data))
                    self._sequence = max(self._sequence, data['sequence_id'])

    def clear(self):
        """Clear all entries (for testing)"""
        with self._lock:
            self._entries.clear()
            self._sequence = 0
            if self.log_file and self.log_file.exists():
                self.log_file.unlink()

    def to_display_format(self, max_entries: int = 50) -> List[Dict[str, Any]]:
        """Recent entries with a short time and a color per entity class"""
        display = []
        for e in self._entries[-max_entries:]:
            if not e.is_safe:
                color = 'red'
            elif e.operation == OperationType.REJECT.value:
                color = 'orange'
            elif e.entity == COORDINATOR:
                color = 'green'
            elif e.entity.startswith('participant'):
                color = 'yellow'
            else:
                color = 'blue'

            display.append({
                'time': e.timestamp.split('T')[1][:8],
                'color': color,
                'entity': e.entity,
                'operation': e.operation,
                'safe': e.is_safe,
                'details': e.details
            })

        return display

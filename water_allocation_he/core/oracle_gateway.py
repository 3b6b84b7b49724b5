"""
Decryption Oracle Gateway
=========================
Outbound boundary to the asynchronous decryption oracle.

The gateway forwards serialized ciphertexts and returns the tracking id
CHOSEN BY THE ORACLE. Later the oracle calls back with cleartext bytes and
a proof; verify() is the trust boundary - nothing downstream mutates unless
the proof is accepted.

Cleartext layout: concatenated big-endian unsigned 32-bit words, in the
order the ciphertexts were submitted.
"""

import struct
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from .exceptions import MalformedCleartext
from .fhe_engine import CiphertextAlgebra, EncryptedValue
from .security_logger import SecurityLogger

WORD_SIZE = 4

# Resolution entry points the oracle may be asked to invoke
RESOLVE_REQUEST_HANDLER = "resolve_request_decryption"
RESOLVE_ZONE_HANDLER = "resolve_zone_decryption"


def encode_cleartext(*values: int) -> bytes:
    """Pack unsigned 32-bit integers in declared order"""
    return b"".join(struct.pack(">I", v) for v in values)


def decode_cleartext(cleartext: bytes, count: int) -> Tuple[int, ...]:
    """
    Unpack exactly `count` unsigned 32-bit words.

    Raises:
        MalformedCleartext: If the byte length does not match
    """
    if len(cleartext) != count * WORD_SIZE:
        raise MalformedCleartext(
            f"Expected {count * WORD_SIZE} cleartext bytes, got {len(cleartext)}"
        )
    return struct.unpack(f">{count}I", cleartext)


class DecryptionOracle(ABC):
    """External decryption capability (asynchronous, proof-carrying)"""

    identity: str

    @abstractmethod
    def submit(self, ciphertexts: List[bytes], resolution_handler: str) -> str:
        """Queue ciphertexts for decryption; returns an opaque callback id"""

    @abstractmethod
    def verify_proof(self, callback_id: str, cleartext: bytes, proof: bytes) -> bool:
        """Check the proof binding cleartext to the submitted ciphertexts"""

    @abstractmethod
    def cancel(self, callback_id: str):
        """Withdraw a job whose answer will no longer be accepted"""


class DecryptionOracleGateway:
    """
    Wraps a DecryptionOracle for the allocation coordinator.

    Holds only the PUBLIC algebra - it can serialize handles but never
    decrypt them.
    """

    def __init__(self,
                 oracle: DecryptionOracle,
                 algebra: CiphertextAlgebra,
                 security_logger: Optional[SecurityLogger] = None):
        if algebra.is_private():
            raise ValueError("Gateway received secret key - security violation!")

        self.oracle = oracle
        self.algebra = algebra
        self.logger = security_logger

        self._requests_sent = 0
        self._proofs_accepted = 0
        self._proofs_rejected = 0
        self._cancelled = 0

    @property
    def oracle_identity(self) -> str:
        return self.oracle.identity

    def request_decryption(self,
                           ciphertexts: Sequence[EncryptedValue],
                           resolution_handler: str) -> str:
        """
        Forward ciphertexts to the oracle.

        Args:
            ciphertexts: Ordered handles; cleartext words come back in this order
            resolution_handler: Entry point the oracle must call back

        Returns:
            Oracle-issued callback id (no structure assumed beyond uniqueness)
        """
        if not ciphertexts:
            raise ValueError("No ciphertexts to decrypt")
        for handle in ciphertexts:
            if not self.algebra.is_initialized(handle):
                raise ValueError("Cannot decrypt an uninitialized ciphertext handle")

        payload = [self.algebra.serialize(h) for h in ciphertexts]
        callback_id = self.oracle.submit(payload, resolution_handler)
        self._requests_sent += 1
        return callback_id

    def cancel(self, callback_id: str):
        self.oracle.cancel(callback_id)
        self._cancelled += 1

    def verify(self, callback_id: str, cleartext: bytes, proof: bytes) -> bool:
        accepted = bool(self.oracle.verify_proof(callback_id, cleartext, proof))

        if accepted:
            self._proofs_accepted += 1
        else:
            self._proofs_rejected += 1

        if self.logger:
            self.logger.log_proof_verified(callback_id, accepted)

        return accepted

    def get_stats(self) -> dict:
        return {
            'oracle_identity': self.oracle_identity,
            'decryption_requests_sent': self._requests_sent,
            'proofs_accepted': self._proofs_accepted,
            'proofs_rejected': self._proofs_rejected,
            'jobs_cancelled': self._cancelled,
            'can_decrypt': self.algebra.is_private()
        }

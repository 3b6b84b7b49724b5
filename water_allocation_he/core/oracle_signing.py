"""
Local Signing Decryption Oracle
===============================
In-process stand-in for the external decryption oracle.

Proof format: ECDSA P-256 / SHA-256 signature over
    callback_id | sha256(submitted ciphertexts) | cleartext
so a proof cannot be replayed for another callback, another set of
ciphertexts, or altered cleartext.

The oracle is the ONLY component holding the private algebra.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .exceptions import AllocationError
from .fhe_engine import CiphertextAlgebra
from .oracle_gateway import DecryptionOracle, encode_cleartext
from .security_logger import SecurityLogger

ResolutionHandler = Callable[[str, bytes, bytes], Any]


class JobStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    # answer delivered but rejected by the resolution handler
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OracleJob:
    """Ciphertext batch awaiting decryption"""
    callback_id: str
    ciphertexts: List[bytes]
    resolution_handler: str
    submitted_at: str
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None

    def digest(self) -> bytes:
        h = hashlib.sha256()
        for ct in self.ciphertexts:
            h.update(len(ct).to_bytes(8, 'big'))
            h.update(ct)
        return h.digest()


class LocalDecryptionOracle(DecryptionOracle):
    """
    Decrypts queued batches on demand and calls back with signed cleartext.

    Callbacks are asynchronous in the protocol sense: nothing happens until
    fulfill() is invoked, so tests control the in-flight window.
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 identity: str = "decryption-oracle",
                 private_key: ec.EllipticCurvePrivateKey = None,
                 security_logger: Optional[SecurityLogger] = None):
        """
        Args:
            algebra: PRIVATE algebra (must hold the secret key)
            identity: Caller identity used when invoking resolution handlers
            private_key: Optional existing signing key, generated if None
            security_logger: Records each decrypt-and-sign under the oracle entity
        """
        if not algebra.is_private():
            raise ValueError("Oracle requires the secret key to decrypt")

        self.algebra = algebra
        self.identity = identity
        self.logger = security_logger
        self.private_key = private_key or ec.generate_private_key(ec.SECP256R1())
        self.public_key = self.private_key.public_key()
        self.public_key_id = self._compute_key_id()

        self._jobs: Dict[str, OracleJob] = {}
        self._handlers: Dict[str, ResolutionHandler] = {}

    def _compute_key_id(self) -> str:
        pub_bytes = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
        return hashlib.sha256(pub_bytes).hexdigest()[:8]

    def get_public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

    def bind(self, resolution_handler: str, handler: ResolutionHandler):
        """Attach the callable behind a resolution entry point name"""
        self._handlers[resolution_handler] = handler

    # ==================== ORACLE PROTOCOL ====================

    def submit(self, ciphertexts: List[bytes], resolution_handler: str) -> str:
        callback_id = secrets.token_hex(16)
        while callback_id in self._jobs:
            callback_id = secrets.token_hex(16)

        self._jobs[callback_id] = OracleJob(
            callback_id=callback_id,
            ciphertexts=list(ciphertexts),
            resolution_handler=resolution_handler,
            submitted_at=datetime.now().isoformat()
        )
        return callback_id

    def verify_proof(self, callback_id: str, cleartext: bytes, proof: bytes) -> bool:
        job = self._jobs.get(callback_id)
        if job is None:
            return False
        try:
            self.public_key.verify(
                proof,
                self._message(job, cleartext),
                ec.ECDSA(hashes.SHA256())
            )
            return True
        except InvalidSignature:
            return False

    # ==================== FULFILMENT ====================

    def produce_response(self, callback_id: str) -> Tuple[bytes, bytes]:
        """Decrypt a queued batch and sign it without delivering it"""
        job = self._get_job(callback_id)
        values = [self.algebra.decrypt(self.algebra.deserialize(ct)) for ct in job.ciphertexts]
        cleartext = encode_cleartext(*values)
        proof = self.private_key.sign(self._message(job, cleartext), ec.ECDSA(hashes.SHA256()))

        if self.logger:
            self.logger.log_oracle_decryption(callback_id, len(values), self.public_key_id)
        return cleartext, proof

    def fulfill(self, callback_id: str) -> Any:
        """
        Decrypt, sign and invoke the job's resolution handler.

        A handler rejecting the answer with an AllocationError dead-letters
        the job (FAILED) and the error propagates. Any other exception
        leaves the job PENDING.
        """
        job = self._get_job(callback_id)
        handler = self._handlers.get(job.resolution_handler)
        if handler is None:
            raise ValueError(f"No handler bound for '{job.resolution_handler}'")

        cleartext, proof = self.produce_response(callback_id)
        try:
            result = handler(callback_id, cleartext, proof)
        except AllocationError as e:
            job.status = JobStatus.FAILED
            job.error = f"{type(e).__name__}: {e}"
            raise
        job.status = JobStatus.FULFILLED
        job.error = None
        return result

    def fulfill_all(self) -> Dict[str, List]:
        """
        Answer every pending job; rejected answers do not stop the batch.

        Returns:
            {'fulfilled': [callback_id, ...],
             'failed': [{'callback_id', 'error', 'detail'}, ...]}
        """
        fulfilled, failed = [], []
        for callback_id in self.pending():
            try:
                self.fulfill(callback_id)
            except AllocationError as e:
                failed.append({
                    'callback_id': callback_id,
                    'error': type(e).__name__,
                    'detail': str(e)
                })
            else:
                fulfilled.append(callback_id)
        return {'fulfilled': fulfilled, 'failed': failed}

    def pending(self) -> List[str]:
        return self._with_status(JobStatus.PENDING)

    def failed(self) -> List[str]:
        return self._with_status(JobStatus.FAILED)

    def cancel(self, callback_id: str):
        """Withdraw a job without answering it"""
        job = self._get_job(callback_id)
        if job.status == JobStatus.PENDING:
            job.status = JobStatus.CANCELLED

    def get_job(self, callback_id: str) -> Optional[OracleJob]:
        return self._jobs.get(callback_id)

    def _with_status(self, status: JobStatus) -> List[str]:
        return [cid for cid, job in self._jobs.items() if job.status == status]

    def _get_job(self, callback_id: str) -> OracleJob:
        job = self._jobs.get(callback_id)
        if job is None:
            raise KeyError(f"Unknown callback id: {callback_id}")
        return job

    @staticmethod
    def _message(job: OracleJob, cleartext: bytes) -> bytes:
        return job.callback_id.encode('utf-8') + b"|" + job.digest() + b"|" + cleartext

"""
Ciphertext Algebra for Encrypted Water Requests
================================================
Capability interface over opaque encrypted integers.

The allocation core never interprets a ciphertext. It only asks the
injected algebra to:
- encrypt a public integer (e.g. a revealed demand being merged)
- add two ciphertexts: E(a) + E(b) = E(a + b)
- serialize / deserialize handles for the decryption oracle
- tell whether a handle was ever initialized

Only a PRIVATE algebra (holding the secret key) can decrypt, and only the
decryption oracle is ever given one.

Backends:
- PlaintextMirrorAlgebra: additive mock whose sums mirror plaintext
  arithmetic modulo 2^32. Used by tests and the CLI demo.
- TenSEALAlgebra (core.tenseal_backend): real BFV encryption.
"""

import base64
import hashlib
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

UINT32_MODULUS = 2 ** 32


@dataclass
class EncryptedValue:
    """
    Opaque handle to an encrypted unsigned integer.

    No plaintext information is stored or derivable from this object.
    """
    ciphertext: bytes
    scheme: str
    checksum: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def wrap(cls, ciphertext: bytes, scheme: str, **metadata) -> 'EncryptedValue':
        return cls(
            ciphertext=ciphertext,
            scheme=scheme,
            checksum=hashlib.sha256(ciphertext).hexdigest()[:12],
            metadata=dict(metadata)
        )

    def to_dict(self) -> dict:
        """Serialize to dictionary for transmission"""
        return {
            'ciphertext': base64.b64encode(self.ciphertext).decode('utf-8'),
            'scheme': self.scheme,
            'checksum': self.checksum,
            'timestamp': self.timestamp,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EncryptedValue':
        """Deserialize from dictionary"""
        return cls(
            ciphertext=base64.b64decode(data['ciphertext']),
            scheme=data['scheme'],
            checksum=data['checksum'],
            timestamp=data.get('timestamp', datetime.now().isoformat()),
            metadata=data.get('metadata', {})
        )

    def get_display_ciphertext(self, max_length: int = 64) -> str:
        """Get truncated base64 ciphertext for display"""
        b64 = base64.b64encode(self.ciphertext).decode('utf-8')
        if len(b64) > max_length:
            return f"{b64[:max_length//2]}...{b64[-max_length//2:]}"
        return b64

    def get_size_kb(self) -> float:
        return len(self.ciphertext) / 1024

    def verify_integrity(self) -> bool:
        return hashlib.sha256(self.ciphertext).hexdigest()[:12] == self.checksum


class CiphertextAlgebra(ABC):
    """
    Additively homomorphic encryption capability.

    Implementations must guarantee decrypt(add(encrypt(a), encrypt(b)))
    == (a + b) mod plain_modulus.
    """

    scheme: str = "abstract"
    plain_modulus: int = UINT32_MODULUS

    @abstractmethod
    def encrypt(self, plain: int) -> EncryptedValue:
        """Encrypt an unsigned integer"""

    @abstractmethod
    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        """Homomorphic addition: E(a) + E(b) = E(a + b)"""

    @abstractmethod
    def decrypt(self, encrypted: EncryptedValue) -> int:
        """
        Decrypt a handle.

        Raises:
            ValueError: If this algebra does not hold the secret key
        """

    @abstractmethod
    def is_private(self) -> bool:
        """Check if this algebra can decrypt (has secret key)"""

    @abstractmethod
    def public(self) -> 'CiphertextAlgebra':
        """Counterpart that can encrypt and add but never decrypt"""

    def zero(self) -> EncryptedValue:
        return self.encrypt(0)

    def serialize(self, encrypted: EncryptedValue) -> bytes:
        return encrypted.ciphertext

    def deserialize(self, data: bytes) -> EncryptedValue:
        return EncryptedValue.wrap(data, self.scheme)

    def is_initialized(self, encrypted: Optional[EncryptedValue]) -> bool:
        return encrypted is not None and len(encrypted.ciphertext) > 0

    def _check_plain(self, plain: int) -> int:
        if isinstance(plain, bool) or not isinstance(plain, int):
            raise TypeError(f"Plaintext must be an int, got {type(plain).__name__}")
        if plain < 0 or plain >= self.plain_modulus:
            raise ValueError(f"Plaintext {plain} outside [0, {self.plain_modulus})")
        return plain

    def _check_scheme(self, encrypted: EncryptedValue):
        if encrypted.scheme != self.scheme:
            raise ValueError(
                f"Ciphertext scheme '{encrypted.scheme}' does not match '{self.scheme}'"
            )
        if not encrypted.verify_integrity():
            raise ValueError("Ciphertext integrity check failed - data may be corrupted")


class PlaintextMirrorAlgebra(CiphertextAlgebra):
    """
    Mock algebra whose ciphertext is the plaintext itself.

    Addition wraps modulo 2^32 like an on-chain euint32, so test harnesses
    can keep a plaintext mirror and compare after decryption.
    """

    scheme = "mirror-u32"

    def __init__(self, has_secret_key: bool = True):
        self._has_secret_key = has_secret_key
        self._operation_count = 0

    def public(self) -> 'PlaintextMirrorAlgebra':
        """Counterpart without decryption capability (coordinator side)"""
        return PlaintextMirrorAlgebra(has_secret_key=False)

    def is_private(self) -> bool:
        return self._has_secret_key

    def encrypt(self, plain: int) -> EncryptedValue:
        value = self._check_plain(plain)
        self._operation_count += 1
        return EncryptedValue.wrap(
            struct.pack(">Q", value), self.scheme,
            operation_id=self._operation_count
        )

    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        self._check_scheme(enc_a)
        self._check_scheme(enc_b)
        total = (self._unpack(enc_a) + self._unpack(enc_b)) % self.plain_modulus
        self._operation_count += 1
        return EncryptedValue.wrap(
            struct.pack(">Q", total), self.scheme,
            operation='sum', operation_id=self._operation_count
        )

    def decrypt(self, encrypted: EncryptedValue) -> int:
        if not self._has_secret_key:
            raise ValueError("Cannot decrypt: algebra does not hold the secret key. "
                             "Only the decryption oracle can decrypt.")
        self._check_scheme(encrypted)
        return self._unpack(encrypted)

    @staticmethod
    def _unpack(encrypted: EncryptedValue) -> int:
        return struct.unpack(">Q", encrypted.ciphertext)[0]

"""
TenSEAL BFV Backend
===================
Exact integer homomorphic encryption for demand and priority values.

BFV is used instead of CKKS because requests carry exact unsigned
integers (cubic metres, priority ranks) and sums must decrypt exactly.

Security Parameters:
- poly_modulus_degree: 4096 -> 128-bit security for BFV
- plain_modulus: 1032193 (prime, = 1 mod 8192, enables batching)

Sums wrap modulo plain_modulus, so callers must keep zone totals below it.
"""

import hashlib
from typing import Optional

import tenseal as ts

from .fhe_engine import CiphertextAlgebra, EncryptedValue


class TenSEALAlgebra(CiphertextAlgebra):
    """
    BFV ciphertext algebra.

    The coordinator receives the PUBLIC context (encrypt + add only).
    The decryption oracle is the only holder of the SECRET context.
    """

    scheme = "bfv"

    def __init__(self,
                 poly_modulus_degree: int = 4096,
                 plain_modulus: int = 1032193,
                 context: Optional[ts.Context] = None):
        """
        Args:
            poly_modulus_degree: Polynomial ring degree (power of 2)
            plain_modulus: Plaintext modulus, bounds every value and sum
            context: Existing TenSEAL context (see from_context)
        """
        if context is None:
            context = ts.context(
                ts.SCHEME_TYPE.BFV,
                poly_modulus_degree=poly_modulus_degree,
                plain_modulus=plain_modulus
            )
        self.context = context
        self.poly_modulus_degree = poly_modulus_degree
        self.plain_modulus = plain_modulus

    @classmethod
    def from_context(cls, context_bytes: bytes, plain_modulus: int = 1032193) -> 'TenSEALAlgebra':
        """Reconstruct from a serialized (public or secret) context"""
        return cls(plain_modulus=plain_modulus, context=ts.context_from(context_bytes))

    def get_public_context(self) -> bytes:
        public_ctx = self.context.copy()
        public_ctx.make_context_public()
        return public_ctx.serialize()

    def get_secret_context(self) -> bytes:
        return self.context.serialize(save_secret_key=True)

    def public(self) -> 'TenSEALAlgebra':
        """Counterpart without decryption capability (coordinator side)"""
        return TenSEALAlgebra.from_context(self.get_public_context(), self.plain_modulus)

    def get_context_hash(self) -> str:
        return hashlib.sha256(self.get_public_context()).hexdigest()[:16]

    def is_private(self) -> bool:
        return self.context.is_private()

    def encrypt(self, plain: int) -> EncryptedValue:
        value = self._check_plain(plain)
        vector = ts.bfv_vector(self.context, [value])
        return EncryptedValue.wrap(vector.serialize(), self.scheme)

    def add(self, enc_a: EncryptedValue, enc_b: EncryptedValue) -> EncryptedValue:
        self._check_scheme(enc_a)
        self._check_scheme(enc_b)
        result = self._load(enc_a) + self._load(enc_b)
        return EncryptedValue.wrap(result.serialize(), self.scheme, operation='sum')

    def decrypt(self, encrypted: EncryptedValue) -> int:
        if not self.context.is_private():
            raise ValueError("Cannot decrypt: context does not contain secret key. "
                             "Only the decryption oracle can decrypt.")
        self._check_scheme(encrypted)
        # BFV decodes into the centered range; map back to unsigned
        return self._load(encrypted).decrypt()[0] % self.plain_modulus

    def _load(self, encrypted: EncryptedValue) -> ts.BFVVector:
        return ts.bfv_vector_from(self.context, encrypted.ciphertext)

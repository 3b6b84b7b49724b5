"""
Encrypted Water Allocation - Core Module

Ciphertext algebra, decryption oracle boundary, correlation and
homomorphic zone accumulation.
"""
from .fhe_engine import CiphertextAlgebra, EncryptedValue, PlaintextMirrorAlgebra
from .exceptions import (
    AllocationError, NotFound, AlreadyProcessed, DecryptionPending,
    InvalidRequest, ZoneNotFound, InvalidProof, MalformedCleartext,
    DuplicateCallback, Unauthorized, DecryptionNotExpired
)
from .security_logger import SecurityLogger, DataType, OperationType
from .events import EventDispatcher, EventType, AllocationEvent
from .oracle_gateway import DecryptionOracle, DecryptionOracleGateway, encode_cleartext, decode_cleartext
from .oracle_signing import LocalDecryptionOracle, JobStatus
from .correlator import OracleCorrelator, CorrelationFlow, CorrelationStatus
from .request_ledger import RequestLedger, Request, DecryptedResult, RequestState
from .allocation_accumulator import AllocationAccumulator, ZoneReveal, zone_hash
from .access_policy import AccessPolicy, CredentialRegistry

__all__ = [
    'CiphertextAlgebra', 'EncryptedValue', 'PlaintextMirrorAlgebra',
    'AllocationError', 'NotFound', 'AlreadyProcessed', 'DecryptionPending',
    'InvalidRequest', 'ZoneNotFound', 'InvalidProof', 'MalformedCleartext',
    'DuplicateCallback', 'Unauthorized', 'DecryptionNotExpired',
    'SecurityLogger', 'DataType', 'OperationType',
    'EventDispatcher', 'EventType', 'AllocationEvent',
    'DecryptionOracle', 'DecryptionOracleGateway', 'encode_cleartext', 'decode_cleartext',
    'LocalDecryptionOracle', 'JobStatus',
    'OracleCorrelator', 'CorrelationFlow', 'CorrelationStatus',
    'RequestLedger', 'Request', 'DecryptedResult', 'RequestState',
    'AllocationAccumulator', 'ZoneReveal', 'zone_hash',
    'AccessPolicy', 'CredentialRegistry'
]

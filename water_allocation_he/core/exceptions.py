"""
Allocation Errors
=================
Failure taxonomy for the encrypted request lifecycle.

Every error is raised BEFORE any ledger, correlator or accumulator
state is touched. There is no rollback path - validation always
precedes mutation.
"""


class AllocationError(ValueError):
    """Base class for all lifecycle failures"""


class NotFound(AllocationError):
    """Unknown request id (or nothing revealed yet)"""


class AlreadyProcessed(AllocationError):
    """Replay or double-resolution attempt"""


class DecryptionPending(AlreadyProcessed):
    """A decryption for this request is already in flight"""


class InvalidRequest(AllocationError):
    """Callback id is unknown, cancelled or belongs to another flow"""


class ZoneNotFound(AllocationError):
    """Zone name was never initialized, or a hash matches no zone"""


class InvalidProof(AllocationError):
    """Oracle proof verification failed"""


class MalformedCleartext(InvalidProof):
    """Accepted cleartext does not have the expected word layout"""


class DuplicateCallback(AllocationError):
    """Oracle reused a callback id"""


class Unauthorized(AllocationError):
    """Caller lacks the capability for this entry point"""


class DecryptionNotExpired(AllocationError):
    """In-flight decryption cannot be cancelled before its timeout"""

"""
Access Policy
=============
Explicit capability checks, evaluated before any state is read:

- only a request's submitter may trigger or cancel its decryption
- only zone administrators may trigger a zone reveal
- only the designated oracle identity may call a resolution entry point

At the network boundary an identity is only accepted together with the
trust token issued to it (see CredentialRegistry).
"""

import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from .exceptions import Unauthorized


class CredentialRegistry:
    """
    Identity -> trust token table.

    Tokens are issued once per identity; configured identities (oracle,
    zone administrators) may be preloaded with known tokens.
    """

    def __init__(self, preset: Optional[Dict[str, str]] = None):
        self._tokens: Dict[str, str] = dict(preset or {})
        self._issued_at: Dict[str, str] = {}
        self._lock = threading.Lock()

    def issue(self, identity: str) -> str:
        """
        Raises:
            Unauthorized: If the identity already holds a credential
        """
        with self._lock:
            if identity in self._tokens:
                raise Unauthorized(f"'{identity}' already holds a credential")
            token = secrets.token_urlsafe(32)
            self._tokens[identity] = token
            self._issued_at[identity] = datetime.now().isoformat()
            return token

    def authenticate(self, identity: str, token: Optional[str]):
        expected = self._tokens.get(identity)
        if expected is None or token is None or not secrets.compare_digest(expected, token):
            raise Unauthorized(f"Invalid credential for '{identity}'")

    def is_registered(self, identity: str) -> bool:
        return identity in self._tokens

    def revoke(self, identity: str) -> bool:
        with self._lock:
            self._issued_at.pop(identity, None)
            return self._tokens.pop(identity, None) is not None

    def __len__(self) -> int:
        return len(self._tokens)


@dataclass(frozen=True)
class AccessPolicy:
    oracle_identity: str
    zone_administrators: FrozenSet[str] = field(default_factory=frozenset)
    credentials: CredentialRegistry = field(default_factory=CredentialRegistry, compare=False)

    def is_oracle(self, caller: str) -> bool:
        return caller == self.oracle_identity

    def may_request_decryption(self, caller: str, submitter: str) -> bool:
        return caller == submitter

    def may_request_zone_decryption(self, caller: str) -> bool:
        return caller in self.zone_administrators

    def authenticate(self, caller: str, token: Optional[str]):
        self.credentials.authenticate(caller, token)

    def enroll(self, caller: str, token: Optional[str] = None) -> Optional[str]:
        """
        First contact issues a credential; later contacts must present it.

        Returns:
            The newly issued token, or None for an already enrolled caller
        """
        if not self.credentials.is_registered(caller):
            return self.credentials.issue(caller)
        self.credentials.authenticate(caller, token)
        return None

    def require_oracle(self, caller: str):
        if not self.is_oracle(caller):
            raise Unauthorized(f"'{caller}' is not the designated decryption oracle")

    def require_submitter(self, caller: str, submitter: str):
        if not self.may_request_decryption(caller, submitter):
            raise Unauthorized(f"'{caller}' did not submit this request")

    def require_zone_administrator(self, caller: str):
        if not self.may_request_zone_decryption(caller):
            raise Unauthorized(f"'{caller}' may not reveal zone totals")

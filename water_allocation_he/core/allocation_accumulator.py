"""
Allocation Accumulator
======================
Per-zone homomorphic running total of revealed water demand.

    E(total_zone) = E(0) + E(d_1) + E(d_2) + ... + E(d_k)

A zone is created lazily on its first contribution and appended to an
ordered registry. Addition is the only mutator - there is no decrement.
The map and the registry always move together.
"""

import hashlib
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .events import EventDispatcher, EventType
from .exceptions import NotFound, ZoneNotFound
from .fhe_engine import CiphertextAlgebra, EncryptedValue
from .security_logger import SecurityLogger


def zone_hash(name: str) -> int:
    """SHA-256 of the UTF-8 zone name as a 256-bit integer"""
    return int.from_bytes(hashlib.sha256(name.encode('utf-8')).digest(), 'big')


@dataclass
class ZoneReveal:
    """Latest oracle-verified plaintext total of a zone"""
    zone: str
    total: int
    callback_id: str
    revealed_at: float
    contributions: int

    def to_dict(self) -> dict:
        return {
            'zone': self.zone,
            'total': self.total,
            'callback_id': self.callback_id,
            'revealed_at': self.revealed_at,
            'revealed_at_iso': datetime.fromtimestamp(self.revealed_at).isoformat(),
            'contributions': self.contributions
        }


class AllocationAccumulator:
    """
    Holds only the PUBLIC algebra: it adds ciphertexts, never decrypts.
    """

    def __init__(self,
                 algebra: CiphertextAlgebra,
                 events: Optional[EventDispatcher] = None,
                 security_logger: Optional[SecurityLogger] = None,
                 clock: Callable[[], float] = time.time):
        if algebra.is_private():
            raise ValueError("Accumulator received secret key - security violation!")

        self.algebra = algebra
        self.events = events
        self.logger = security_logger
        self._clock = clock

        self._totals: Dict[str, EncryptedValue] = {}
        self._registry: List[str] = []
        self._contributions: Dict[str, int] = {}
        self._reveals: Dict[str, ZoneReveal] = {}
        self._lock = threading.Lock()

    def contribute(self, zone: str, amount: EncryptedValue) -> EncryptedValue:
        """
        Homomorphically add `amount` to the zone's total.

        Returns:
            The zone's new encrypted total
        """
        if not self.algebra.is_initialized(amount):
            raise ValueError("Cannot contribute an uninitialized ciphertext")

        with self._lock:
            created = zone not in self._totals
            current = self.algebra.zero() if created else self._totals[zone]
            updated = self.algebra.add(current, amount)

            # algebra calls above may raise; registry only changes after them
            if created:
                self._registry.append(zone)
                self._contributions[zone] = 0
            self._totals[zone] = updated
            self._contributions[zone] += 1

        if self.logger:
            self.logger.log_contribution(zone, created)
        if self.events:
            self.events.emit(EventType.ZONE_ALLOCATION_UPDATED,
                             zone=zone, contributions=self._contributions[zone],
                             zone_created=created)
        return updated

    def read_encrypted(self, zone: str) -> EncryptedValue:
        """
        Raises:
            ZoneNotFound: If the zone was never initialized
        """
        if zone not in self._totals:
            raise ZoneNotFound(f"Zone '{zone}' not found")
        return self._totals[zone]

    def is_initialized(self, zone: str) -> bool:
        return zone in self._totals

    def zone_for_hash(self, name_hash: int) -> str:
        """
        Reverse-map a name hash by linear scan over the registry.

        Raises:
            ZoneNotFound: If no registered zone hashes to this value
        """
        for name in self._registry:
            if zone_hash(name) == name_hash:
                return name
        raise ZoneNotFound(f"No zone matches hash {name_hash:#x}")

    def zones(self) -> List[str]:
        return list(self._registry)

    def contribution_count(self, zone: str) -> int:
        self.read_encrypted(zone)
        return self._contributions[zone]

    # ==================== REVEALED TOTALS ====================

    def record_reveal(self,
                      zone: str,
                      total: int,
                      callback_id: str,
                      contributions: Optional[int] = None) -> ZoneReveal:
        """
        Persist a revealed total.

        Args:
            contributions: Contribution count when the reveal was requested;
                defaults to the current count
        """
        self.read_encrypted(zone)
        reveal = ZoneReveal(
            zone=zone,
            total=total,
            callback_id=callback_id,
            revealed_at=self._clock(),
            contributions=self._contributions[zone] if contributions is None else contributions
        )
        with self._lock:
            self._reveals[zone] = reveal
        return reveal

    def revealed_total(self, zone: str) -> ZoneReveal:
        """
        Raises:
            ZoneNotFound: Unknown zone
            NotFound: Zone exists but was never revealed
        """
        self.read_encrypted(zone)
        if zone not in self._reveals:
            raise NotFound(f"Zone '{zone}' has not been revealed yet")
        return self._reveals[zone]

    def summary(self) -> List[Dict]:
        return [
            {
                'zone': name,
                'zone_hash': f"{zone_hash(name):#066x}",
                'contributions': self._contributions[name],
                'encrypted_total_preview': self._totals[name].get_display_ciphertext(32),
                'revealed': self._reveals[name].to_dict() if name in self._reveals else None
            }
            for name in self._registry
        ]

"""
Shared fixtures: plaintext-mirror algebra, controllable clock and a
coordinator wired to the in-process signing oracle.
"""

import pytest

from water_allocation_he.config import AllocationConfig
from water_allocation_he.coordinator.allocation_coordinator import build_local_system
from water_allocation_he.core.fhe_engine import PlaintextMirrorAlgebra
from water_allocation_he.core.security_logger import SecurityLogger

FARMER = "farmer_001"
OTHER_FARMER = "farmer_002"
ADMIN = "water-authority"
ORACLE = "decryption-oracle"
TARGET_ZONE = "default"


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def private_algebra():
    return PlaintextMirrorAlgebra()


@pytest.fixture
def algebra(private_algebra):
    return private_algebra.public()


@pytest.fixture
def config():
    return AllocationConfig(
        target_zone=TARGET_ZONE,
        oracle_identity=ORACLE,
        zone_administrators=[ADMIN],
        decryption_timeout_seconds=600.0
    )


@pytest.fixture
def security_logger():
    return SecurityLogger()


@pytest.fixture
def system(config, private_algebra, security_logger, clock):
    return build_local_system(config, private_algebra, security_logger, clock)


@pytest.fixture
def coordinator(system):
    return system[0]


@pytest.fixture
def oracle(system):
    return system[1]

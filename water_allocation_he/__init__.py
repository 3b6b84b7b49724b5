"""
Confidential water allocation on homomorphically encrypted requests.
"""
from .config import AllocationConfig
from .coordinator import AllocationCoordinator, build_local_system

__version__ = "1.0.0"

__all__ = ['AllocationConfig', 'AllocationCoordinator', 'build_local_system']

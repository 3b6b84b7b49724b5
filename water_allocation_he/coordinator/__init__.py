"""
Water Allocation Coordinator Module
"""
from .allocation_coordinator import AllocationCoordinator, build_local_system

__all__ = ['AllocationCoordinator', 'build_local_system']

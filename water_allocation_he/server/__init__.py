"""
HTTP / WebSocket surface of the allocation coordinator.
"""
from .server import AllocationServer, create_app

__all__ = ['AllocationServer', 'create_app']

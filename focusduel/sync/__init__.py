"""
Remote synchronization package for FocusDuel.
"""

from .remote import RemoteSync

__all__ = [
    "RemoteSync"
]

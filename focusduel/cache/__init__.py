"""
Local cache package for FocusDuel.
"""

from .local import LocalCache

__all__ = [
    "LocalCache"
]

"""
FocusDuel: a "stay off your phone" duel coordinated through a shared store.
"""

__version__ = "0.1.0"

"""
Utilities for FocusDuel.
"""

from .ids import now_ms, generate_challenge_id, generate_participant_id

__all__ = [
    "now_ms",
    "generate_challenge_id",
    "generate_participant_id"
]

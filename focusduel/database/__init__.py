"""
Database package for FocusDuel.
"""

from .connection import DatabaseManager, get_database, get_database_manager, close_database
from .models import ChallengeRecord, challenge_to_record, challenge_from_record
from .operations import ChallengeOps

__all__ = [
    "DatabaseManager",
    "get_database",
    "get_database_manager",
    "close_database",
    "ChallengeRecord",
    "challenge_to_record",
    "challenge_from_record",
    "ChallengeOps"
]

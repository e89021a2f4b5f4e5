"""
Identifier and clock helpers for FocusDuel.
"""

import secrets
import string
import time
import uuid
from typing import Container

_ALPHABET = string.ascii_lowercase + string.digits
PARTICIPANT_ID_LENGTH = 7


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_challenge_id() -> str:
    """Generate a fresh challenge identifier."""
    return uuid.uuid4().hex


def generate_participant_id(taken: Container[str] = ()) -> str:
    """Generate a short participant identifier not present in ``taken``."""
    while True:
        participant_id = "".join(secrets.choice(_ALPHABET) for _ in range(PARTICIPANT_ID_LENGTH))
        if participant_id not in taken:
            return participant_id

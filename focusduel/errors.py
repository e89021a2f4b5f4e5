"""
Error taxonomy for FocusDuel.

None of these are fatal: every failure path leaves the local session usable.
"""

from typing import Optional


class FocusDuelError(Exception):
    """Base class for all FocusDuel errors."""

    user_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None, challenge_id: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.challenge_id = challenge_id


class ValidationError(FocusDuelError):
    """Input rejected before any state mutation."""

    user_message = "Invalid challenge details."


class ChallengeNotFoundError(FocusDuelError):
    """Join target does not exist."""

    user_message = "Challenge not found. Check the code and try again."


class ChallengeAlreadyStartedError(FocusDuelError):
    """Join target has already left the waiting status."""

    user_message = "This challenge has already started."


class TransportError(FocusDuelError):
    """Reading from the remote store failed."""

    user_message = "Could not reach the server."


class SyncError(FocusDuelError):
    """Writing to the remote store failed."""

    user_message = "Failed to sync with the server. Others may not see this update."


PersistenceError = SyncError

"""
Activity monitor for FocusDuel.

The platform adapter forwards focus and visibility events to
``ActivityMonitor.handle``. Hidden and blur signals go through the same grace
window: a loss is only reported if the signal is not followed by a visible,
focus or screen-lock signal within ``grace_ms``. Navigating away is reported
immediately.

A hidden signal that outlasts the grace window counts as a loss. Locking the
phone is only forgiven when the platform adapter emits ``screen_lock``, either
before the hidden signal or within the grace window after it.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set
import structlog

from .models import ChallengeStatus, ParticipantStatus

logger = structlog.get_logger(__name__)


class ActivitySignal(str, Enum):
    """Attention signals raised by the client platform."""
    HIDDEN = "hidden"
    VISIBLE = "visible"
    BLUR = "blur"
    FOCUS = "focus"
    SCREEN_LOCK = "screen_lock"
    NAVIGATE_AWAY = "navigate_away"


class ActivityMonitor:
    """Turns attention signals into a single loss for the local participant."""

    DEBOUNCED = {ActivitySignal.HIDDEN, ActivitySignal.BLUR}
    RESTORING = {ActivitySignal.VISIBLE, ActivitySignal.FOCUS}

    def __init__(self, slot, on_loss: Callable[[], Awaitable[Any]], grace_ms: int = 100):
        self.slot = slot
        self.on_loss = on_loss
        self.grace_ms = grace_ms
        self.screen_locked = False
        self._pending: Optional[asyncio.Task] = None
        self._reported: Set[str] = set()
        self._loss_tasks: Set[asyncio.Task] = set()

    def is_watching(self) -> bool:
        """Whether the local participant is currently dueling."""
        challenge = self.slot.challenge
        participant = self.slot.participant
        return (
            challenge is not None
            and participant is not None
            and challenge.status == ChallengeStatus.ACTIVE
            and participant.status == ParticipantStatus.ACTIVE
        )

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def handle(self, signal):
        """Process one platform signal."""
        signal = ActivitySignal(signal)
        logger.debug("Activity signal", signal=signal)

        if signal == ActivitySignal.SCREEN_LOCK:
            self.screen_locked = True
            self._cancel_pending(signal)
            return

        if signal in self.RESTORING:
            self.screen_locked = False
            self._cancel_pending(signal)
            return

        if not self.is_watching():
            return

        if signal == ActivitySignal.NAVIGATE_AWAY:
            self._cancel_pending(signal)
            self._report(signal)
            return

        if self.screen_locked:
            logger.info("Signal ignored while screen is locked", signal=signal)
            return

        if not self.has_pending:
            self._pending = asyncio.get_running_loop().create_task(self._grace(signal))

    async def _grace(self, signal: ActivitySignal):
        await asyncio.sleep(self.grace_ms / 1000)
        self._pending = None
        self._report(signal)

    def _cancel_pending(self, signal: ActivitySignal):
        if self.has_pending:
            self._pending.cancel()
            logger.info("Pending loss cancelled", signal=signal)
        self._pending = None

    def _report(self, signal: ActivitySignal):
        # Re-read the slot: the challenge may have moved on during the grace window
        if not self.is_watching():
            return

        challenge_id = self.slot.challenge.id
        if challenge_id in self._reported:
            return
        self._reported.add(challenge_id)

        logger.info("Participant left the duel", challenge_id=challenge_id,
                    participant_id=self.slot.participant_id, signal=signal)
        task = asyncio.get_running_loop().create_task(self._invoke(challenge_id))
        self._loss_tasks.add(task)
        task.add_done_callback(self._loss_tasks.discard)

    async def _invoke(self, challenge_id: str):
        try:
            await self.on_loss()
        except Exception as e:
            logger.error("Failed to record loss", error=str(e), challenge_id=challenge_id)

    def cancel(self):
        """Drop any pending loss and forget reported challenges."""
        self._cancel_pending(ActivitySignal.FOCUS)
        self.screen_locked = False
        self._reported.clear()

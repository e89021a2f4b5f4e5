"""
Challenge deadline timer for FocusDuel.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple
import structlog

from ..utils.ids import now_ms
from .models import Challenge, ChallengeStatus

logger = structlog.get_logger(__name__)


class ChallengeTimer:
    """Fires a callback when the active challenge reaches its end time.

    The callback receives no arguments; it is expected to read the current
    challenge at fire-time rather than the one the timer was armed with.
    """

    def __init__(self, on_expire: Callable[[], Awaitable[Any]],
                 clock: Callable[[], int] = now_ms):
        self.on_expire = on_expire
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._key: Optional[Tuple[str, int]] = None

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def armed_end_time(self) -> Optional[int]:
        return self._key[1] if self.is_armed and self._key else None

    def sync(self, challenge: Optional[Challenge]):
        """Arm, re-arm or disarm to match ``challenge``."""
        if (challenge is None
                or challenge.status != ChallengeStatus.ACTIVE
                or challenge.end_time is None):
            self.cancel()
            return

        key = (challenge.id, challenge.end_time)
        if self.is_armed and self._key == key:
            return

        self.cancel()
        delay = max(0, challenge.end_time - self.clock()) / 1000
        self._key = key
        self._task = asyncio.get_running_loop().create_task(self._run(delay))
        logger.debug("Challenge timer armed", challenge_id=challenge.id,
                     end_time=challenge.end_time, delay=delay)

    def cancel(self):
        """Disarm the timer."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Challenge timer disarmed", key=self._key)
        self._task = None
        self._key = None

    async def _run(self, delay: float):
        if delay > 0:
            await asyncio.sleep(delay)
        else:
            logger.info("Challenge deadline already passed", key=self._key)

        # Detach first so a disarm triggered by the callback cannot cancel it
        key = self._key
        self._task = None
        self._key = None

        logger.info("Challenge timer fired", key=key)
        try:
            await self.on_expire()
        except Exception as e:
            logger.error("Challenge timer callback failed", error=str(e), key=key)

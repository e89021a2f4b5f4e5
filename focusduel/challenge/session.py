"""
Client session for FocusDuel.

One ``ChallengeSession`` is built per client process. It owns the current
challenge (through a ``ChallengeSlot`` that callbacks read at fire-time) and
wires the state machine to remote sync, the local cache, the timer and the
activity monitor.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Tuple
import structlog

from ..config import get_config
from ..errors import (
    ChallengeAlreadyStartedError,
    ChallengeNotFoundError,
    SyncError,
    TransportError,
)
from ..utils.ids import now_ms
from .models import Challenge, ChallengeStatus, Participant
from .monitor import ActivityMonitor, ActivitySignal
from .reconcile import merge
from .state_machine import ChallengeStateMachine
from .timer import ChallengeTimer

if TYPE_CHECKING:
    from ..cache.local import LocalCache
    from ..sync.remote import RemoteSync

logger = structlog.get_logger(__name__)

_UNSET = object()


class SessionView(str, Enum):
    """Screens the presentation layer can be asked to show."""
    HOME = "home"
    INVITE = "invite"
    WAITING = "waiting"
    DUEL = "duel"
    RESULTS = "results"


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SessionListener:
    """Presentation hooks. The default implementation only logs."""

    def notify(self, level: NoticeLevel, message: str):
        logger.info("Notice", level=level, message=message)

    def navigate(self, view: SessionView, challenge_id: Optional[str] = None):
        logger.info("Navigate", view=view, challenge_id=challenge_id)

    def challenge_updated(self, challenge: Optional[Challenge]):
        pass


class ChallengeSlot:
    """Stable holder for the latest challenge and the local participant id."""

    def __init__(self):
        self.challenge: Optional[Challenge] = None
        self.participant_id: Optional[str] = None

    @property
    def participant(self) -> Optional[Participant]:
        if self.challenge is None or self.participant_id is None:
            return None
        return self.challenge.participants.get(self.participant_id)

    def clear(self):
        self.challenge = None
        self.participant_id = None


class ChallengeSession:
    """Local view of one challenge, kept in sync with the shared store."""

    def __init__(self, remote_sync: "RemoteSync", local_cache: "LocalCache",
                 listener: Optional[SessionListener] = None,
                 state_machine: Optional[ChallengeStateMachine] = None,
                 clock: Callable[[], int] = now_ms,
                 grace_ms: Optional[int] = None):
        self.config = get_config()
        self.remote_sync = remote_sync
        self.local_cache = local_cache
        self.listener = listener or SessionListener()
        self.clock = clock
        self.state_machine = state_machine or ChallengeStateMachine(clock=clock)

        self.slot = ChallengeSlot()
        self.timer = ChallengeTimer(self._on_deadline, clock=clock)
        self.monitor = ActivityMonitor(
            self.slot,
            self._on_left_duel,
            grace_ms=self.config.activity_grace_ms if grace_ms is None else grace_ms,
        )

        # Serializes mutations and reconciliation against the slot
        self._lock = asyncio.Lock()

    @property
    def challenge(self) -> Optional[Challenge]:
        return self.slot.challenge

    @property
    def participant_id(self) -> Optional[str]:
        return self.slot.participant_id

    def can_start(self) -> bool:
        challenge = self.slot.challenge
        return challenge is not None and challenge.can_start(
            self.slot.participant_id, self.config.min_participants
        )

    def handle_signal(self, signal: ActivitySignal):
        """Forward a platform attention signal to the activity monitor."""
        self.monitor.handle(signal)

    async def create(self, name: str, duration: int, reward: str = "") -> str:
        """Create a challenge and become its first participant.

        The challenge is stored locally before it is persisted, so a failed
        write still leaves a consistent local session. The write failure is
        raised as ``PersistenceError``.
        """
        challenge = self.state_machine.create(name, duration, reward)

        async with self._lock:
            await self._store(challenge, participant_id=challenge.created_by)
            self.listener.navigate(SessionView.INVITE, challenge.id)

            try:
                await self.remote_sync.persist(challenge)
            except SyncError:
                self.listener.notify(NoticeLevel.ERROR,
                                     "Failed to create challenge. Others cannot join yet.")
                raise

        return challenge.id

    async def join(self, challenge_id: str, name: str, reward: str = ""):
        """Join an existing waiting challenge."""
        self.state_machine.validate_name(name)

        async with self._lock:
            existing = await self._load(challenge_id)
            if existing is None:
                self.listener.notify(NoticeLevel.ERROR, ChallengeNotFoundError.user_message)
                raise ChallengeNotFoundError(challenge_id=challenge_id)

            try:
                updated, participant_id = self.state_machine.add_participant(existing, name, reward)
            except ChallengeAlreadyStartedError as e:
                self.listener.notify(NoticeLevel.ERROR, e.user_message)
                raise

            await self._store(updated, participant_id=participant_id)
            # Only our own entry: never rewrite fields other clients may have moved on
            await self._persist(updated, participant_ids=[participant_id], fields=())
            self.listener.navigate(SessionView.WAITING, challenge_id)

    async def start(self) -> bool:
        """Start the loaded challenge."""
        async with self._lock:
            challenge = await self._refresh()
            if challenge is None:
                logger.warning("Start requested without a loaded challenge")
                return False

            updated = self.state_machine.start(challenge)
            if updated is challenge:
                return False

            await self._store(updated)
            await self._persist(updated, fields=("status", "start_time", "end_time"))
            self.listener.navigate(SessionView.DUEL, updated.id)
            return True

    async def record_loss(self, participant_id: Optional[str] = None) -> bool:
        """Eliminate a participant (the local one by default)."""
        async with self._lock:
            participant_id = participant_id or self.slot.participant_id
            if participant_id is None:
                logger.warning("Loss requested without a participant")
                return False

            challenge = await self._refresh()
            if challenge is None:
                logger.warning("Loss requested without a loaded challenge")
                return False

            updated = self.state_machine.record_loss(challenge, participant_id)
            if updated is challenge:
                return False

            await self._store(updated)
            await self._persist(updated, participant_ids=self._changed(challenge, updated),
                                fields=self._changed_fields(challenge, updated))

            if participant_id == self.slot.participant_id:
                self.listener.notify(NoticeLevel.ERROR,
                                     "You looked at your phone! You lost the challenge.")
            if updated.status == ChallengeStatus.COMPLETED:
                self.listener.navigate(SessionView.RESULTS, updated.id)
            return True

    async def complete_on_timeout(self) -> bool:
        """Resolve the loaded challenge once its deadline has passed."""
        async with self._lock:
            challenge = await self._refresh()
            if challenge is None:
                return False

            if challenge.end_time is not None and self.clock() < challenge.end_time:
                # Deadline moved or the timer woke early
                self.timer.sync(challenge)
                return False

            updated = self.state_machine.complete_on_timeout(challenge)
            if updated is challenge:
                return False

            await self._store(updated)
            await self._persist(updated, participant_ids=self._changed(challenge, updated),
                                fields=self._changed_fields(challenge, updated))

            self.listener.notify(NoticeLevel.SUCCESS, "Challenge completed successfully!")
            self.listener.navigate(SessionView.RESULTS, updated.id)
            return True

    async def reconcile(self, snapshot: Challenge) -> bool:
        """Merge a remote snapshot into the local view. Safe to call redundantly."""
        async with self._lock:
            return await self._apply_snapshot(snapshot)

    async def restore(self) -> Optional[Challenge]:
        """Reload the session from the local cache and refresh it from remote."""
        async with self._lock:
            challenge, participant_id = self.local_cache.load()
            if challenge is None:
                return None

            logger.info("Restoring cached challenge", challenge_id=challenge.id,
                        participant_id=participant_id)
            await self._store(challenge, participant_id=participant_id)
            await self._refresh()
            return self.slot.challenge

    async def reset(self):
        """End the session locally. The remote record is left untouched."""
        async with self._lock:
            challenge_id = self.slot.challenge.id if self.slot.challenge else None
            await self._stop_background()
            self.local_cache.clear()
            self.slot.clear()
            self.listener.challenge_updated(None)
            logger.info("Session reset", challenge_id=challenge_id)
            self.listener.navigate(SessionView.HOME)

    async def close(self):
        """Stop background work, keeping the cache for a warm reload."""
        await self._stop_background()

    async def _stop_background(self):
        await self.remote_sync.unwatch()
        self.timer.cancel()
        self.monitor.cancel()

    async def _load(self, challenge_id: str) -> Optional[Challenge]:
        try:
            return await self.remote_sync.fetch(challenge_id)
        except TransportError as e:
            cached = self.local_cache.load_challenge()
            if cached is not None and cached.id == challenge_id:
                logger.warning("Using cached challenge", error=str(e), challenge_id=challenge_id)
                return cached
            logger.warning("Challenge unreachable", error=str(e), challenge_id=challenge_id)
            return None

    async def _refresh(self) -> Optional[Challenge]:
        # Re-fetch right before mutating to narrow the window for lost updates
        challenge = self.slot.challenge
        if challenge is None:
            return None
        try:
            remote = await self.remote_sync.fetch(challenge.id)
        except TransportError as e:
            logger.warning("Refresh failed, using local state", error=str(e),
                           challenge_id=challenge.id)
            return self.slot.challenge

        if remote is not None:
            await self._apply_snapshot(remote)
        return self.slot.challenge

    async def _apply_snapshot(self, snapshot: Challenge) -> bool:
        local = self.slot.challenge
        if local is None or local.id != snapshot.id:
            logger.debug("Ignoring snapshot for another challenge", challenge_id=snapshot.id)
            return False

        merged = merge(local, snapshot, self.slot.participant_id)
        if merged == local:
            return False

        await self._store(merged)
        logger.info("Challenge reconciled", challenge_id=merged.id,
                    old_state=local.status, new_state=merged.status)

        if local.status == ChallengeStatus.WAITING and merged.status == ChallengeStatus.ACTIVE:
            self.listener.navigate(SessionView.DUEL, merged.id)
            self.listener.notify(NoticeLevel.SUCCESS, "Challenge started!")
        elif local.status != ChallengeStatus.COMPLETED and merged.status == ChallengeStatus.COMPLETED:
            self.listener.navigate(SessionView.RESULTS, merged.id)
        return True

    async def _store(self, challenge: Challenge, participant_id=_UNSET):
        previous_id = self.slot.challenge.id if self.slot.challenge else None

        self.slot.challenge = challenge
        self.local_cache.save_challenge(challenge)
        if participant_id is not _UNSET:
            self.slot.participant_id = participant_id
            if participant_id is not None:
                self.local_cache.save_participant_id(participant_id)

        self.timer.sync(challenge)
        if challenge.id != previous_id or not self.remote_sync.is_watching:
            await self.remote_sync.watch(challenge.id, self.reconcile)

        self.listener.challenge_updated(challenge)

    async def _persist(self, challenge: Challenge,
                       participant_ids: Optional[Iterable[str]] = None,
                       fields: Optional[Iterable[str]] = None) -> bool:
        try:
            await self.remote_sync.persist(challenge, participant_ids=participant_ids, fields=fields)
            return True
        except SyncError as e:
            logger.warning("Continuing with local state only", error=str(e),
                           challenge_id=challenge.id)
            self.listener.notify(NoticeLevel.WARNING, SyncError.user_message)
            return False

    @staticmethod
    def _changed(before: Challenge, after: Challenge) -> List[str]:
        return [
            pid for pid, participant in after.participants.items()
            if pid not in before.participants or before.participants[pid].status != participant.status
        ]

    @staticmethod
    def _changed_fields(before: Challenge, after: Challenge) -> Tuple[str, ...]:
        # An unchanged status is never written: our view of it may be stale
        return ("status",) if after.status != before.status else ()

    async def _on_deadline(self):
        await self.complete_on_timeout()

    async def _on_left_duel(self):
        await self.record_loss()

"""
Remote synchronization for FocusDuel.
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, Optional
import pydantic
import structlog

from ..config import get_config
from ..challenge.models import Challenge
from ..database.models import challenge_to_record, challenge_from_record
from ..database.operations import ChallengeOps
from ..errors import TransportError

logger = structlog.get_logger(__name__)

SnapshotConsumer = Callable[[Challenge], Awaitable[Any]]


class RemoteSync:
    """Reads, writes and watches challenge records in the shared store.

    ``watch`` runs two producers for the same consumer: a change-stream
    subscription and a polling loop. Subscription delivery is not reliable
    (and not available at all on a standalone server), so the polling loop
    always runs. A failed subscription is retried every ``poll_interval``.
    """

    def __init__(self, challenge_ops: Optional[ChallengeOps] = None,
                 poll_interval: Optional[float] = None):
        self.config = get_config()
        self.challenge_ops = challenge_ops or ChallengeOps()
        self.poll_interval = poll_interval if poll_interval is not None else self.config.poll_interval
        self.watched_id: Optional[str] = None
        self._tasks: List[asyncio.Task] = []

    async def fetch(self, challenge_id: str) -> Optional[Challenge]:
        """Fetch a challenge; None if unknown, TransportError if unreachable."""
        document = await self.challenge_ops.get_challenge(challenge_id)
        if document is None:
            logger.info("Challenge not found", challenge_id=challenge_id)
            return None

        try:
            return challenge_from_record(document)
        except pydantic.ValidationError as e:
            logger.error("Malformed challenge record", error=str(e), challenge_id=challenge_id)
            raise TransportError("Malformed challenge record", challenge_id=challenge_id) from e

    async def persist(self, challenge: Challenge,
                      participant_ids: Optional[Iterable[str]] = None,
                      fields: Optional[Iterable[str]] = None) -> None:
        """Push a challenge to the store. Raises SyncError on failure."""
        record = challenge_to_record(challenge)
        await self.challenge_ops.upsert_challenge(record, participant_ids=participant_ids, fields=fields)
        logger.debug("Challenge persisted", challenge_id=challenge.id, status=challenge.status)

    @property
    def is_watching(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def watch(self, challenge_id: str, consumer: SnapshotConsumer):
        """Deliver snapshots of ``challenge_id`` to ``consumer`` until unwatched."""
        await self.unwatch()

        loop = asyncio.get_running_loop()
        self.watched_id = challenge_id
        self._tasks = [
            loop.create_task(self._subscribe(challenge_id, consumer)),
            loop.create_task(self._poll(challenge_id, consumer)),
        ]
        logger.info("Watching challenge", challenge_id=challenge_id,
                    poll_interval=self.poll_interval)

    async def unwatch(self):
        """Stop both producers."""
        current = asyncio.current_task()
        tasks, self._tasks = self._tasks, []
        others = [task for task in tasks if task is not current]

        for task in tasks:
            task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)

        if self.watched_id is not None:
            logger.info("Stopped watching challenge", challenge_id=self.watched_id)
        self.watched_id = None

    async def _subscribe(self, challenge_id: str, consumer: SnapshotConsumer):
        failures = 0
        while True:
            try:
                async for document in self.challenge_ops.watch_challenge(challenge_id):
                    failures = 0
                    try:
                        snapshot = challenge_from_record(document)
                    except pydantic.ValidationError as e:
                        logger.error("Malformed challenge record", error=str(e),
                                     challenge_id=challenge_id)
                        continue
                    logger.debug("Realtime update received", challenge_id=challenge_id)
                    await self._deliver(consumer, snapshot)

            except TransportError as e:
                if failures == 0:
                    logger.warning("Subscription unavailable, relying on polling",
                                   error=str(e), challenge_id=challenge_id)
                else:
                    logger.debug("Subscription still unavailable", error=str(e),
                                 challenge_id=challenge_id, failures=failures)
                failures += 1

            # Re-subscribe on the polling cadence
            await asyncio.sleep(self.poll_interval)

    async def _poll(self, challenge_id: str, consumer: SnapshotConsumer):
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                snapshot = await self.fetch(challenge_id)
            except TransportError as e:
                logger.warning("Error checking for updates", error=str(e),
                               challenge_id=challenge_id)
                continue

            if snapshot is not None:
                await self._deliver(consumer, snapshot)

    async def _deliver(self, consumer: SnapshotConsumer, snapshot: Challenge):
        try:
            await consumer(snapshot)
        except Exception as e:
            logger.error("Failed to reconcile snapshot", error=str(e), challenge_id=snapshot.id)

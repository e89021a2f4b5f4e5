"""
Database operations for FocusDuel.
"""

from typing import Any, AsyncIterator, Dict, Iterable, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
import structlog

from .connection import get_database
from ..config import get_db_config
from ..errors import TransportError, SyncError

logger = structlog.get_logger(__name__)

TOP_LEVEL_FIELDS = ("created_by", "duration", "reward", "status", "start_time", "end_time")
WATCHED_OPERATIONS = ["insert", "update", "replace"]


class BaseOperations:
    """Base operations class."""

    def __init__(self):
        self.db_config = get_db_config()

    async def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance."""
        return await get_database()


class ChallengeOps(BaseOperations):
    """Challenge database operations."""

    async def _collection(self):
        db = await self.get_db()
        return db[self.db_config.challenges_collection]

    async def get_challenge(self, challenge_id: str) -> Optional[Dict[str, Any]]:
        """Get a challenge document by id, or None when it does not exist."""
        try:
            collection = await self._collection()
            return await collection.find_one({"_id": challenge_id})

        except (PyMongoError, RuntimeError) as e:
            logger.error("Failed to get challenge", error=str(e), challenge_id=challenge_id)
            raise TransportError(str(e), challenge_id=challenge_id) from e

    @staticmethod
    def build_update(record: Dict[str, Any],
                     participant_ids: Optional[Iterable[str]] = None,
                     fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Build an additive upsert for ``record``.

        Named top-level fields and participant entries are written with
        ``$set``; participants go under their own nested key so writers
        touching different participants never overwrite each other. All
        other top-level fields are only written when the document is new.
        """
        participants = record.get("participants", {})
        if participant_ids is None:
            participant_ids = participants.keys()
        set_fields = set(TOP_LEVEL_FIELDS if fields is None else fields)

        to_set: Dict[str, Any] = {f: record.get(f) for f in TOP_LEVEL_FIELDS if f in set_fields}
        to_insert: Dict[str, Any] = {f: record.get(f) for f in TOP_LEVEL_FIELDS if f not in set_fields}
        for pid in participant_ids:
            if pid in participants:
                to_set[f"participants.{pid}"] = participants[pid]

        update: Dict[str, Any] = {}
        if to_set:
            update["$set"] = to_set
        if to_insert:
            update["$setOnInsert"] = to_insert
        return update

    async def upsert_challenge(self, record: Dict[str, Any],
                               participant_ids: Optional[Iterable[str]] = None,
                               fields: Optional[Iterable[str]] = None) -> None:
        """Write a challenge document, creating it if needed. Idempotent on ``_id``."""
        challenge_id = record["_id"]
        update = self.build_update(record, participant_ids, fields)
        try:
            collection = await self._collection()
            await collection.update_one({"_id": challenge_id}, update, upsert=True)
            logger.debug("Challenge upserted", challenge_id=challenge_id,
                         keys=sorted(update.get("$set", {})))

        except (PyMongoError, RuntimeError) as e:
            logger.error("Failed to upsert challenge", error=str(e), challenge_id=challenge_id)
            raise SyncError(str(e), challenge_id=challenge_id) from e

    async def watch_challenge(self, challenge_id: str) -> AsyncIterator[Dict[str, Any]]:
        """Yield the full document every time the challenge changes."""
        pipeline = [{
            "$match": {
                "documentKey._id": challenge_id,
                "operationType": {"$in": WATCHED_OPERATIONS},
            }
        }]
        try:
            collection = await self._collection()
            async with collection.watch(pipeline, full_document="updateLookup") as stream:
                async for change in stream:
                    document = change.get("fullDocument")
                    if document is not None:
                        yield document

        except (PyMongoError, RuntimeError) as e:
            logger.warning("Challenge change stream failed", error=str(e),
                           challenge_id=challenge_id)
            raise TransportError(str(e), challenge_id=challenge_id) from e

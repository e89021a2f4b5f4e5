import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from pymongo.errors import ConnectionFailure, PyMongoError

from focusduel.database import connection
from focusduel.database.connection import get_database
from focusduel.database.models import challenge_to_record
from focusduel.database.operations import ChallengeOps
from focusduel.errors import SyncError, TransportError


class FakeChangeStream:
    def __init__(self, changes):
        self.changes = list(changes)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.changes:
            raise StopAsyncIteration
        change = self.changes.pop(0)
        if isinstance(change, Exception):
            raise change
        return change


@pytest.fixture
def collection():
    collection = MagicMock()
    collection.find_one = AsyncMock()
    collection.update_one = AsyncMock()
    return collection


@pytest.fixture
def ops(collection):
    with patch("focusduel.database.operations.get_database",
               AsyncMock(return_value={"challenges": collection})):
        yield ChallengeOps()


@pytest.fixture
def record(machine):
    challenge = machine.create("Alice", 30, "coffee")
    challenge, _ = machine.add_participant(challenge, "Bob", "tea")
    return challenge_to_record(challenge)


async def test_get_challenge(ops, collection):
    collection.find_one.return_value = {"_id": "abc"}

    assert await ops.get_challenge("abc") == {"_id": "abc"}
    collection.find_one.assert_awaited_once_with({"_id": "abc"})


async def test_get_challenge_failure_is_transport_error(ops, collection):
    collection.find_one.side_effect = PyMongoError("down")

    with pytest.raises(TransportError) as exc_info:
        await ops.get_challenge("abc")
    assert exc_info.value.challenge_id == "abc"


async def test_disconnected_store_is_transport_error():
    with patch("focusduel.database.operations.get_database",
               AsyncMock(side_effect=RuntimeError("Failed to connect to database"))):
        with pytest.raises(TransportError):
            await ChallengeOps().get_challenge("abc")


def test_build_update_full_record(record):
    update = ChallengeOps.build_update(record)

    assert "$setOnInsert" not in update
    assert update["$set"]["status"] == "waiting"
    participant_keys = [k for k in update["$set"] if k.startswith("participants.")]
    assert len(participant_keys) == 2
    assert "participants" not in update["$set"]


def test_build_update_only_named_participant(record):
    bob = next(pid for pid in record["participants"] if pid != record["created_by"])

    update = ChallengeOps.build_update(record, participant_ids=[bob], fields=())

    assert update["$set"] == {f"participants.{bob}": record["participants"][bob]}
    assert update["$setOnInsert"]["created_by"] == record["created_by"]
    assert update["$setOnInsert"]["status"] == "waiting"


async def test_upsert_challenge(ops, collection, record):
    await ops.upsert_challenge(record, fields=("status",))

    args, kwargs = collection.update_one.call_args
    assert args[0] == {"_id": record["_id"]}
    assert args[1]["$set"]["status"] == "waiting"
    assert "duration" in args[1]["$setOnInsert"]
    assert kwargs == {"upsert": True}


async def test_upsert_failure_is_sync_error(ops, collection, record):
    collection.update_one.side_effect = PyMongoError("down")

    with pytest.raises(SyncError):
        await ops.upsert_challenge(record)


async def test_watch_challenge_yields_full_documents(ops, collection):
    stream = FakeChangeStream([
        {"operationType": "update", "fullDocument": {"_id": "abc", "status": "active"}},
        {"operationType": "update", "fullDocument": None},
        {"operationType": "replace", "fullDocument": {"_id": "abc", "status": "completed"}},
    ])
    collection.watch = MagicMock(return_value=stream)

    documents = [document async for document in ops.watch_challenge("abc")]

    assert [d["status"] for d in documents] == ["active", "completed"]
    pipeline = collection.watch.call_args.args[0]
    assert pipeline[0]["$match"]["documentKey._id"] == "abc"
    assert collection.watch.call_args.kwargs == {"full_document": "updateLookup"}
    assert stream.closed


async def test_watch_challenge_failure_is_transport_error(ops, collection):
    collection.watch = MagicMock(return_value=FakeChangeStream([PyMongoError("no replica set")]))

    with pytest.raises(TransportError):
        async for _ in ops.watch_challenge("abc"):
            pass


async def test_failed_connects_leave_no_open_client():
    clients = []

    def make_client(*args, **kwargs):
        client = MagicMock()
        client.admin.command = AsyncMock(side_effect=ConnectionFailure("refused"))
        clients.append(client)
        return client

    with patch("focusduel.database.connection.AsyncIOMotorClient", side_effect=make_client):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await get_database()

    assert len(clients) == 3
    assert all(client.close.call_count == 1 for client in clients)
    assert connection._db_manager is None

import asyncio
import copy

import pytest

from focusduel.cache import LocalCache
from focusduel.challenge import (
    ChallengeSession,
    ChallengeSlot,
    ChallengeStateMachine,
    SessionListener,
)
from focusduel.config import reset_config
from focusduel.database.operations import ChallengeOps
from focusduel.errors import SyncError, TransportError
from focusduel.sync import RemoteSync

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class InMemoryChallengeOps:
    """Dict-backed stand-in for ChallengeOps with the same nested-key upserts."""

    def __init__(self):
        self.documents = {}
        self.updates = []
        self.fail_reads = False
        self.fail_writes = False

    async def get_challenge(self, challenge_id):
        await asyncio.sleep(0)
        if self.fail_reads:
            raise TransportError("store unreachable", challenge_id=challenge_id)
        document = self.documents.get(challenge_id)
        return copy.deepcopy(document)

    async def upsert_challenge(self, record, participant_ids=None, fields=None):
        await asyncio.sleep(0)
        if self.fail_writes:
            raise SyncError("store unreachable", challenge_id=record["_id"])

        update = ChallengeOps.build_update(record, participant_ids, fields)
        self.updates.append(update)

        document = self.documents.get(record["_id"])
        if document is None:
            document = {"_id": record["_id"], "participants": {}}
            document.update(copy.deepcopy(update.get("$setOnInsert", {})))
        for key, value in update.get("$set", {}).items():
            if key.startswith("participants."):
                document["participants"][key.split(".", 1)[1]] = copy.deepcopy(value)
            else:
                document[key] = value
        self.documents[record["_id"]] = document

    async def watch_challenge(self, challenge_id):
        raise TransportError("change streams unavailable", challenge_id=challenge_id)
        yield  # makes this an async generator


class RecordingListener(SessionListener):
    def __init__(self):
        self.notices = []
        self.views = []
        self.updates = []

    def notify(self, level, message):
        self.notices.append((level, message))

    def navigate(self, view, challenge_id=None):
        self.views.append(view)

    def challenge_updated(self, challenge):
        self.updates.append(challenge)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def machine(clock):
    return ChallengeStateMachine(clock=clock)


@pytest.fixture
def store():
    return InMemoryChallengeOps()


@pytest.fixture
async def make_session(store, clock, tmp_path):
    sessions = []

    def factory(name="client", poll_interval=3600.0, grace_ms=10):
        session = ChallengeSession(
            remote_sync=RemoteSync(store, poll_interval=poll_interval),
            local_cache=LocalCache(tmp_path / name),
            listener=RecordingListener(),
            clock=clock,
            grace_ms=grace_ms,
        )
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        await session.close()


@pytest.fixture
def active_slot(machine):
    challenge = machine.create("Alice", 10, "coffee")
    challenge, _ = machine.add_participant(challenge, "Bob", "tea")
    slot = ChallengeSlot()
    slot.challenge = machine.start(challenge)
    slot.participant_id = challenge.created_by
    return slot

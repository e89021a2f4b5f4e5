import pytest

from focusduel.challenge import ChallengeStateMachine, ChallengeStatus, ParticipantStatus
from focusduel.errors import ChallengeAlreadyStartedError, ValidationError


def _with_players(machine, *names):
    challenge = machine.create(names[0], 30, "")
    ids = [challenge.created_by]
    for name in names[1:]:
        challenge, pid = machine.add_participant(challenge, name, "")
        ids.append(pid)
    return challenge, ids


class TestCreate:

    def test_creates_waiting_challenge_with_one_participant(self, machine):
        challenge = machine.create("Alice", 30, "coffee")

        assert challenge.status == ChallengeStatus.WAITING
        assert challenge.start_time is None and challenge.end_time is None
        assert list(challenge.participants) == [challenge.created_by]
        creator = challenge.participants[challenge.created_by]
        assert creator.name == "Alice"
        assert creator.reward == "coffee"
        assert creator.status == ParticipantStatus.WAITING

    def test_ids_are_fresh(self, machine):
        first = machine.create("Alice", 5)
        second = machine.create("Alice", 5)
        assert first.id != second.id
        assert first.created_by != second.created_by

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_rejects_blank_name(self, machine, name):
        with pytest.raises(ValidationError):
            machine.create(name, 5)

    @pytest.mark.parametrize("duration", [0, -3, 2.5, "10", True])
    def test_rejects_bad_duration(self, machine, duration):
        with pytest.raises(ValidationError):
            machine.create("Alice", duration)


class TestJoin:

    def test_adds_waiting_participant_without_touching_input(self, machine):
        challenge = machine.create("Alice", 30)
        updated, bob_id = machine.add_participant(challenge, "Bob", "tea")

        assert len(challenge.participants) == 1
        assert updated.participants[bob_id].status == ParticipantStatus.WAITING
        assert updated.participants[bob_id].reward == "tea"
        assert bob_id != challenge.created_by

    def test_rejects_late_join(self, machine):
        challenge = machine.start(machine.create("Alice", 30))
        with pytest.raises(ChallengeAlreadyStartedError):
            machine.add_participant(challenge, "Bob")


class TestStart:

    def test_sets_timestamps_and_activates_everyone(self, machine, clock):
        challenge, _ = _with_players(machine, "Alice", "Bob", "Cara")
        started = machine.start(challenge)

        assert started.status == ChallengeStatus.ACTIVE
        assert started.start_time == clock.now
        assert started.end_time - started.start_time == 30 * 60000
        assert all(p.status == ParticipantStatus.ACTIVE for p in started.participants.values())

    def test_start_is_a_no_op_once_active(self, machine, clock):
        started = machine.start(machine.create("Alice", 30))
        clock.advance(5000)
        assert machine.start(started) is started


class TestRecordLoss:

    def test_last_one_standing_wins(self, machine):
        challenge, ids = _with_players(machine, "Alice", "Bob", "Cara", "Dan")
        challenge = machine.start(challenge)

        for pid in ids[:-1]:
            assert challenge.status == ChallengeStatus.ACTIVE
            challenge = machine.record_loss(challenge, pid)

        assert challenge.status == ChallengeStatus.COMPLETED
        assert challenge.winners() == [ids[-1]]
        assert sorted(challenge.losers()) == sorted(ids[:-1])

    def test_everyone_lost_means_no_winner(self, machine):
        challenge = machine.start(machine.create("Alice", 30))
        challenge = machine.record_loss(challenge, challenge.created_by)

        assert challenge.status == ChallengeStatus.COMPLETED
        assert challenge.winners() == []

    def test_is_idempotent(self, machine):
        challenge, ids = _with_players(machine, "Alice", "Bob", "Cara")
        challenge = machine.start(challenge)

        once = machine.record_loss(challenge, ids[1])
        twice = machine.record_loss(once, ids[1])

        assert twice == once
        assert twice.status == ChallengeStatus.ACTIVE

    def test_ignored_before_start(self, machine):
        challenge = machine.create("Alice", 30)
        assert machine.record_loss(challenge, challenge.created_by) is challenge

    def test_unknown_participant_is_ignored(self, machine):
        challenge = machine.start(machine.create("Alice", 30))
        assert machine.record_loss(challenge, "nobody") is challenge

    def test_winner_cannot_lose_afterwards(self, machine):
        challenge, ids = _with_players(machine, "Alice", "Bob")
        challenge = machine.record_loss(machine.start(challenge), ids[1])

        after = machine.record_loss(challenge, ids[0])

        assert after.participants[ids[0]].status == ParticipantStatus.WON
        assert after.status == ChallengeStatus.COMPLETED


class TestCompleteOnTimeout:

    def test_active_win_and_lost_stay_lost(self, machine):
        challenge, ids = _with_players(machine, "Alice", "Bob", "Cara")
        challenge = machine.record_loss(machine.start(challenge), ids[1])

        completed = machine.complete_on_timeout(challenge)

        assert completed.status == ChallengeStatus.COMPLETED
        assert completed.participants[ids[0]].status == ParticipantStatus.WON
        assert completed.participants[ids[1]].status == ParticipantStatus.LOST
        assert completed.participants[ids[2]].status == ParticipantStatus.WON

    def test_completed_is_terminal(self, machine):
        challenge, ids = _with_players(machine, "Alice", "Bob")
        completed = machine.complete_on_timeout(machine.start(challenge))

        assert machine.complete_on_timeout(completed) is completed
        assert machine.record_loss(completed, ids[0]) is completed
        assert machine.start(completed) is completed


def test_transition_tables():
    assert ChallengeStateMachine.can_transition(ChallengeStatus.WAITING, ChallengeStatus.ACTIVE)
    assert not ChallengeStateMachine.can_transition(ChallengeStatus.COMPLETED, ChallengeStatus.ACTIVE)
    assert not ChallengeStateMachine.can_transition(ParticipantStatus.WON, ParticipantStatus.LOST)
    assert ChallengeStateMachine.is_terminal(ParticipantStatus.LOST)
    assert ChallengeStateMachine.is_terminal(ChallengeStatus.COMPLETED)
    assert not ChallengeStateMachine.is_terminal(ParticipantStatus.ACTIVE)

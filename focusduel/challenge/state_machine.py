"""
Challenge state machine for FocusDuel.

Operations are pure: they take a Challenge and return a new one, leaving the
input untouched. Persistence and identity live in the session.
"""

from typing import Callable, Dict, Set, Tuple
import structlog

from ..errors import ValidationError, ChallengeAlreadyStartedError
from ..utils.ids import now_ms, generate_challenge_id, generate_participant_id
from .models import Challenge, ChallengeStatus, Participant, ParticipantStatus

logger = structlog.get_logger(__name__)

MINUTE_MS = 60 * 1000


class ChallengeStateMachine:
    """Transition rules for challenges and their participants."""

    # Define valid state transitions
    CHALLENGE_TRANSITIONS: Dict[ChallengeStatus, Set[ChallengeStatus]] = {
        ChallengeStatus.WAITING: {ChallengeStatus.ACTIVE},
        ChallengeStatus.ACTIVE: {ChallengeStatus.COMPLETED},
        ChallengeStatus.COMPLETED: set(),  # Terminal state
    }

    PARTICIPANT_TRANSITIONS: Dict[ParticipantStatus, Set[ParticipantStatus]] = {
        ParticipantStatus.WAITING: {ParticipantStatus.ACTIVE},
        ParticipantStatus.ACTIVE: {ParticipantStatus.LOST, ParticipantStatus.WON},
        ParticipantStatus.LOST: set(),  # Terminal state
        ParticipantStatus.WON: set(),   # Terminal state
    }

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock

    @classmethod
    def can_transition(cls, current, new) -> bool:
        """Check if a challenge or participant status may move to ``new``."""
        table = (
            cls.CHALLENGE_TRANSITIONS
            if isinstance(current, ChallengeStatus)
            else cls.PARTICIPANT_TRANSITIONS
        )
        return new in table.get(current, set())

    @classmethod
    def is_terminal(cls, status) -> bool:
        table = (
            cls.CHALLENGE_TRANSITIONS
            if isinstance(status, ChallengeStatus)
            else cls.PARTICIPANT_TRANSITIONS
        )
        return len(table.get(status, set())) == 0

    @staticmethod
    def validate_name(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Name is required.")
        return name.strip()

    @staticmethod
    def validate_duration(duration: int) -> int:
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes.")
        return duration

    def create(self, name: str, duration: int, reward: str = "") -> Challenge:
        """Build a new waiting challenge with its creator as sole participant."""
        name = self.validate_name(name)
        duration = self.validate_duration(duration)

        creator_id = generate_participant_id()
        challenge = Challenge(
            id=generate_challenge_id(),
            created_by=creator_id,
            duration=duration,
            participants={
                creator_id: Participant(name=name, reward=reward or "", status=ParticipantStatus.WAITING)
            },
        )

        logger.info("Challenge created", challenge_id=challenge.id, creator_id=creator_id,
                    duration=duration)
        return challenge

    def add_participant(self, challenge: Challenge, name: str,
                        reward: str = "") -> Tuple[Challenge, str]:
        """Append a waiting participant and return the new challenge and their id."""
        name = self.validate_name(name)

        if challenge.status != ChallengeStatus.WAITING:
            logger.warning("Late join rejected", challenge_id=challenge.id,
                           status=challenge.status)
            raise ChallengeAlreadyStartedError(challenge_id=challenge.id)

        participant_id = generate_participant_id(taken=challenge.participants)
        updated = challenge.model_copy(deep=True)
        updated.participants[participant_id] = Participant(
            name=name, reward=reward or "", status=ParticipantStatus.WAITING
        )

        logger.info("Participant joined", challenge_id=challenge.id,
                    participant_id=participant_id, participants=len(updated.participants))
        return updated, participant_id

    def start(self, challenge: Challenge) -> Challenge:
        """Move a waiting challenge and all its participants to active."""
        if not self.can_transition(challenge.status, ChallengeStatus.ACTIVE):
            logger.warning("Invalid state transition attempted", challenge_id=challenge.id,
                           current_state=challenge.status, new_state=ChallengeStatus.ACTIVE)
            return challenge

        now = self.clock()
        updated = challenge.model_copy(deep=True)
        updated.status = ChallengeStatus.ACTIVE
        updated.start_time = now
        updated.end_time = now + challenge.duration * MINUTE_MS
        for participant in updated.participants.values():
            participant.status = ParticipantStatus.ACTIVE

        logger.info("Challenge state transitioned", challenge_id=challenge.id,
                    old_state=challenge.status, new_state=updated.status,
                    end_time=updated.end_time)
        return updated

    def record_loss(self, challenge: Challenge, participant_id: str) -> Challenge:
        """Eliminate one participant; the last one standing wins."""
        participant = challenge.participants.get(participant_id)
        if participant is None:
            logger.warning("Loss recorded for unknown participant", challenge_id=challenge.id,
                           participant_id=participant_id)
            return challenge

        if (challenge.status != ChallengeStatus.ACTIVE
                or not self.can_transition(participant.status, ParticipantStatus.LOST)):
            logger.debug("Loss ignored", challenge_id=challenge.id, participant_id=participant_id,
                         challenge_status=challenge.status, participant_status=participant.status)
            return challenge

        updated = challenge.model_copy(deep=True)
        updated.participants[participant_id].status = ParticipantStatus.LOST

        remaining = updated.active_participants()
        if len(remaining) == 1:
            updated.participants[remaining[0]].status = ParticipantStatus.WON
            updated.status = ChallengeStatus.COMPLETED
        elif not remaining:
            updated.status = ChallengeStatus.COMPLETED

        logger.info("Participant lost", challenge_id=challenge.id, participant_id=participant_id,
                    remaining=len(remaining), challenge_status=updated.status)
        return updated

    def complete_on_timeout(self, challenge: Challenge) -> Challenge:
        """Resolve an active challenge whose deadline has passed."""
        if not self.can_transition(challenge.status, ChallengeStatus.COMPLETED):
            logger.debug("Timeout ignored", challenge_id=challenge.id, status=challenge.status)
            return challenge

        updated = challenge.model_copy(deep=True)
        for participant in updated.participants.values():
            if participant.status == ParticipantStatus.ACTIVE:
                participant.status = ParticipantStatus.WON
        updated.status = ChallengeStatus.COMPLETED

        logger.info("Challenge completed on timeout", challenge_id=challenge.id,
                    winners=len(updated.winners()))
        return updated

"""
Challenge models for FocusDuel.
"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ChallengeStatus(str, Enum):
    """Challenge status enumeration."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"


class ParticipantStatus(str, Enum):
    """Participant status enumeration."""
    WAITING = "waiting"
    ACTIVE = "active"
    LOST = "lost"
    WON = "won"


class Participant(BaseModel):
    """One entrant in a challenge."""

    name: str = Field(..., description="Display name")
    reward: str = Field(default="", description="Reward the participant is staking")
    status: ParticipantStatus = Field(default=ParticipantStatus.WAITING)


class Challenge(BaseModel):
    """The duel aggregate: participants, timing and status."""

    id: str = Field(..., description="Challenge identifier")
    created_by: str = Field(..., description="Participant id of the creator")
    duration: int = Field(..., description="Duration in minutes", gt=0)
    reward: str = Field(default="", description="Legacy challenge-level reward")
    participants: Dict[str, Participant] = Field(default_factory=dict)
    status: ChallengeStatus = Field(default=ChallengeStatus.WAITING)

    # Epoch milliseconds, set together on start
    start_time: Optional[int] = Field(None, description="When the duel started")
    end_time: Optional[int] = Field(None, description="When the duel ends")

    def participant_ids_with(self, status: ParticipantStatus) -> List[str]:
        return [pid for pid, p in self.participants.items() if p.status == status]

    def active_participants(self) -> List[str]:
        return self.participant_ids_with(ParticipantStatus.ACTIVE)

    def winners(self) -> List[str]:
        return self.participant_ids_with(ParticipantStatus.WON)

    def losers(self) -> List[str]:
        return self.participant_ids_with(ParticipantStatus.LOST)

    def won_rewards(self) -> List[str]:
        """Rewards staked by the participants who lost."""
        return [
            self.participants[pid].reward
            for pid in self.losers()
            if self.participants[pid].reward.strip()
        ]

    def is_creator(self, participant_id: Optional[str]) -> bool:
        return participant_id is not None and participant_id == self.created_by

    def can_start(self, participant_id: Optional[str], min_participants: int = 2) -> bool:
        """Whether the start control should be offered to ``participant_id``."""
        return (
            self.status == ChallengeStatus.WAITING
            and self.is_creator(participant_id)
            and len(self.participants) >= min_participants
        )

    def time_remaining_ms(self, now: int) -> int:
        """Milliseconds left on the countdown."""
        if self.status != ChallengeStatus.ACTIVE or self.end_time is None:
            return 0
        return max(0, self.end_time - now)

"""
Persisted record shape for FocusDuel challenges.

This module is the only place that knows how a Challenge is laid out in the
remote store.
"""

from typing import Any, Dict, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..challenge.models import Challenge, ChallengeStatus, Participant


class ParticipantRecord(BaseModel):
    """Participant entry nested under ``participants.<id>``."""

    name: str
    reward: str = ""
    status: str = "waiting"

    @field_validator("reward", mode="before")
    @classmethod
    def _none_reward(cls, v):
        return v or ""


class ChallengeRecord(BaseModel):
    """Challenge document as stored in the challenges collection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    created_by: str
    duration: int
    reward: str = ""
    participants: Dict[str, ParticipantRecord] = Field(default_factory=dict)
    status: str = ChallengeStatus.WAITING.value
    start_time: Optional[int] = None
    end_time: Optional[int] = None

    @field_validator("reward", mode="before")
    @classmethod
    def _none_reward(cls, v):
        return v or ""

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _falsy_timestamp(cls, v):
        # Unset timestamps may be stored as 0 or null
        return v or None


def challenge_to_record(challenge: Challenge) -> Dict[str, Any]:
    """Map an in-memory Challenge to its persisted document."""
    record = ChallengeRecord(
        id=challenge.id,
        created_by=challenge.created_by,
        duration=challenge.duration,
        reward=challenge.reward,
        participants={
            pid: ParticipantRecord(name=p.name, reward=p.reward, status=p.status.value)
            for pid, p in challenge.participants.items()
        },
        status=challenge.status.value,
        start_time=challenge.start_time,
        end_time=challenge.end_time,
    )
    return record.model_dump(by_alias=True)


def challenge_from_record(document: Mapping[str, Any]) -> Challenge:
    """Map a persisted document back to a Challenge."""
    record = ChallengeRecord.model_validate(dict(document))
    return Challenge(
        id=record.id,
        created_by=record.created_by,
        duration=record.duration,
        reward=record.reward,
        participants={
            pid: Participant(name=p.name, reward=p.reward, status=p.status)
            for pid, p in record.participants.items()
        },
        status=record.status,
        start_time=record.start_time,
        end_time=record.end_time,
    )

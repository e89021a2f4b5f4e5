"""
Reconciliation of remote challenge snapshots with local state.
"""

from typing import Dict, Optional

from .models import Challenge, ChallengeStatus, Participant, ParticipantStatus

CHALLENGE_RANK: Dict[ChallengeStatus, int] = {
    ChallengeStatus.WAITING: 0,
    ChallengeStatus.ACTIVE: 1,
    ChallengeStatus.COMPLETED: 2,
}

PARTICIPANT_RANK: Dict[ParticipantStatus, int] = {
    ParticipantStatus.WAITING: 0,
    ParticipantStatus.ACTIVE: 1,
    ParticipantStatus.LOST: 2,
    ParticipantStatus.WON: 2,
}


def _merge_participant(local: Participant, remote: Participant, own: bool) -> Participant:
    # Statuses only move forward, so the further-along entry wins. Ties go to
    # remote, except for the local participant's own entry.
    local_rank = PARTICIPANT_RANK[local.status]
    remote_rank = PARTICIPANT_RANK[remote.status]
    if local_rank > remote_rank or (own and local_rank == remote_rank):
        return local
    return remote


def normalize(challenge: Challenge) -> Challenge:
    """Bring participant statuses in line with the challenge status."""
    for participant in challenge.participants.values():
        if challenge.status == ChallengeStatus.ACTIVE:
            if participant.status == ParticipantStatus.WAITING:
                participant.status = ParticipantStatus.ACTIVE
        elif challenge.status == ChallengeStatus.COMPLETED:
            if participant.status == ParticipantStatus.ACTIVE:
                participant.status = ParticipantStatus.WON
            elif participant.status == ParticipantStatus.WAITING:
                participant.status = ParticipantStatus.LOST
    return challenge


def merge(local: Optional[Challenge], remote: Challenge,
          self_participant_id: Optional[str] = None) -> Challenge:
    """Merge an inbound remote snapshot into the local view.

    Pure and idempotent, so the subscription and the polling loop can both
    feed it. Participant entries are merged per key and entries the remote
    has not seen yet (the local participant's own entry after a fresh join,
    for instance) are kept. On equal status rank the local participant's own
    entry is taken from ``local``; every other entry from ``remote``.
    """
    if local is None or local.id != remote.id:
        return normalize(remote.model_copy(deep=True))

    participants: Dict[str, Participant] = {}
    for pid, remote_participant in remote.participants.items():
        local_participant = local.participants.get(pid)
        if local_participant is None:
            participants[pid] = remote_participant.model_copy()
        else:
            participants[pid] = _merge_participant(
                local_participant, remote_participant, own=(pid == self_participant_id)
            ).model_copy()

    # Ids are never reused or deleted, so entries missing remotely are just unseen
    for pid, local_participant in local.participants.items():
        if pid not in participants:
            participants[pid] = local_participant.model_copy()

    if CHALLENGE_RANK[local.status] > CHALLENGE_RANK[remote.status]:
        status = local.status
    else:
        status = remote.status

    if remote.start_time is not None:
        start_time, end_time = remote.start_time, remote.end_time
    else:
        start_time, end_time = local.start_time, local.end_time

    merged = remote.model_copy(
        deep=True,
        update={
            "participants": participants,
            "status": status,
            "start_time": start_time,
            "end_time": end_time,
        },
    )
    return normalize(merged)

"""
Challenge management package for FocusDuel.
"""

from .models import Challenge, ChallengeStatus, Participant, ParticipantStatus
from .state_machine import ChallengeStateMachine
from .reconcile import merge
from .timer import ChallengeTimer
from .monitor import ActivityMonitor, ActivitySignal
from .session import ChallengeSession, ChallengeSlot, SessionListener, SessionView, NoticeLevel

__all__ = [
    "Challenge",
    "ChallengeStatus",
    "Participant",
    "ParticipantStatus",
    "ChallengeStateMachine",
    "merge",
    "ChallengeTimer",
    "ActivityMonitor",
    "ActivitySignal",
    "ChallengeSession",
    "ChallengeSlot",
    "SessionListener",
    "SessionView",
    "NoticeLevel"
]

"""Status enums and transition tables for challenges and submissions.

Challenge:  ACTIVE → COMPLETED | EXPIRED   (COMPLETED, EXPIRED terminal)
Submission: PENDING → APPROVED | REJECTED  (APPROVED, REJECTED terminal)
"""

import enum

from challengehub.errors import InvalidTransitionError


class ChallengeStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class SubmissionStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    EXTREME = "EXTREME"


class NotificationType(str, enum.Enum):
    CHALLENGE_NEW = "CHALLENGE_NEW"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"


CHALLENGE_TRANSITIONS: dict[ChallengeStatus, frozenset[ChallengeStatus]] = {
    ChallengeStatus.ACTIVE: frozenset({ChallengeStatus.COMPLETED, ChallengeStatus.EXPIRED}),
    ChallengeStatus.COMPLETED: frozenset(),  # terminal
    ChallengeStatus.EXPIRED: frozenset(),    # terminal
}

SUBMISSION_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED}),
    SubmissionStatus.APPROVED: frozenset(),  # terminal
    SubmissionStatus.REJECTED: frozenset(),  # terminal
}


def can_transition_challenge(current: ChallengeStatus, target: ChallengeStatus) -> bool:
    return ChallengeStatus(target) in CHALLENGE_TRANSITIONS[ChallengeStatus(current)]


def validate_challenge_transition(current: ChallengeStatus, target: ChallengeStatus) -> None:
    """Raise InvalidTransitionError unless current → target is in the table."""
    current, target = ChallengeStatus(current), ChallengeStatus(target)
    if not can_transition_challenge(current, target):
        allowed = sorted(s.value for s in CHALLENGE_TRANSITIONS[current])
        raise InvalidTransitionError("challenge", current.value, target.value, allowed)


def can_transition_submission(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return SubmissionStatus(target) in SUBMISSION_TRANSITIONS[SubmissionStatus(current)]

"""Repository interfaces and their SQLAlchemy implementations."""

from challengehub.repositories.base import (
    ChallengeRepository,
    FanoutJobStore,
    NotificationStore,
    SubmissionRepository,
    UserDirectory,
    page_to_offset,
    validate_pagination,
)
from challengehub.repositories.challenge_repository import SqlChallengeRepository
from challengehub.repositories.fanout_job_repository import SqlFanoutJobStore
from challengehub.repositories.notification_repository import SqlNotificationStore
from challengehub.repositories.submission_repository import SqlSubmissionRepository
from challengehub.repositories.user_repository import SqlUserDirectory

__all__ = [
    "ChallengeRepository",
    "FanoutJobStore",
    "NotificationStore",
    "SubmissionRepository",
    "UserDirectory",
    "page_to_offset",
    "validate_pagination",
    "SqlChallengeRepository",
    "SqlFanoutJobStore",
    "SqlNotificationStore",
    "SqlSubmissionRepository",
    "SqlUserDirectory",
]

"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from challengehub.state_machine import (
    ChallengeStatus,
    Difficulty,
    NotificationType,
    SubmissionStatus,
)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class ChallengeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    difficulty: Difficulty
    required_actions: int = Field(default=1, ge=1)
    rewards: dict = Field(default_factory=dict)
    metadata: dict = Field(default_factory=dict)
    media_file_id: str | None = None
    thumbnail_url: str | None = None
    start_date: datetime | None = None
    expires_at: datetime | None = None


class ChallengeUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    rewards: dict | None = None
    metadata: dict | None = None
    # Plain str so an unknown value reaches the transition check.
    status: str | None = None


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    title: str
    description: str
    difficulty: Difficulty
    status: ChallengeStatus
    required_actions: int
    rewards: dict
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    media_file_id: str | None
    thumbnail_url: str | None
    start_date: datetime
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class ChallengeDetailResponse(ChallengeResponse):
    submission_count: int = 0


class ChallengeListResponse(BaseModel):
    items: list[ChallengeResponse] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class SubmissionCreate(BaseModel):
    challenge_id: UUID
    description: str | None = None
    media_file_id: str = Field(..., min_length=1)
    video_url: str = Field(..., min_length=1)
    thumbnail_url: str | None = None
    metadata: dict = Field(default_factory=dict)


class SubmissionReview(BaseModel):
    status: SubmissionStatus
    score: int | None = Field(default=None, ge=0, le=100)
    feedback: str | None = None


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    challenge_id: UUID
    user_id: UUID
    description: str | None
    media_file_id: str
    video_url: str
    thumbnail_url: str | None
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    status: SubmissionStatus
    score: int | None
    feedback: str | None
    reviewed_at: datetime | None
    reviewed_by: UUID | None
    created_at: datetime


class SubmissionListResponse(BaseModel):
    items: list[SubmissionResponse] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    notification_type: NotificationType
    title: str
    body: str
    payload: dict
    is_read: bool
    read_at: datetime | None
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse] = Field(default_factory=list)
    total: int = 0
    unread_count: int = 0
    page: int = 1
    per_page: int = 20


class NotificationUpdate(BaseModel):
    is_read: bool = True


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    message: str

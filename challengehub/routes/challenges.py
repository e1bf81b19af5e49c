"""Challenge and submission endpoints."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.auth import Caller, get_caller, require_admin, require_reviewer
from challengehub.config import Settings, get_settings
from challengehub.database import get_db
from challengehub.dependencies import (
    get_challenge_manager,
    get_fanout_engine,
    get_submission_workflow,
)
from challengehub.logging_config import get_logger
from challengehub.schemas import (
    ChallengeCreate,
    ChallengeDetailResponse,
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeUpdate,
    MessageResponse,
    SubmissionCreate,
    SubmissionListResponse,
    SubmissionResponse,
    SubmissionReview,
)
from challengehub.services.challenge_service import ChallengeLifecycleManager
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.services.scheduler_service import dispatch_jobs
from challengehub.services.submission_service import SubmissionReviewWorkflow
from challengehub.state_machine import ChallengeStatus, Difficulty

logger = get_logger(__name__)
router = APIRouter(prefix="/api/challenges", tags=["challenges"])


def _schedule_fanout(background_tasks: BackgroundTasks, fanout: NotificationFanoutEngine) -> None:
    """Queue jobs enqueued during this request; call only after commit."""
    if fanout.enqueued_job_ids:
        background_tasks.add_task(dispatch_jobs, list(fanout.enqueued_job_ids))


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    body: ChallengeCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_admin),
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
    fanout: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """Publish a challenge; every active user is notified after commit."""
    challenge = await manager.create(
        title=body.title,
        description=body.description,
        difficulty=body.difficulty,
        required_actions=body.required_actions,
        rewards=body.rewards,
        metadata=body.metadata,
        media_file_id=body.media_file_id,
        thumbnail_url=body.thumbnail_url,
        start_date=body.start_date,
        expires_at=body.expires_at,
    )
    await db.commit()
    _schedule_fanout(background_tasks, fanout)

    logger.info("challenge_published", challenge_id=str(challenge.id), by=str(caller.user_id))
    return ChallengeResponse.model_validate(challenge)


@router.get("", response_model=ChallengeListResponse)
async def list_challenges(
    status: ChallengeStatus | None = Query(None),
    difficulty: Difficulty | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    settings: Settings = Depends(get_settings),
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
):
    """List challenges, filterable by status and difficulty."""
    challenges, total = await manager.find_all(
        status=status, difficulty=difficulty, page=page, limit=per_page
    )
    return ChallengeListResponse(
        items=[ChallengeResponse.model_validate(c) for c in challenges],
        total=total,
        page=page,
        per_page=min(per_page, settings.max_page_size),
    )


@router.get("/active", response_model=ChallengeListResponse)
async def list_active_challenges(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    settings: Settings = Depends(get_settings),
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
):
    """Challenges still open for submissions, newest first."""
    challenges, total = await manager.find_active(page=page, limit=per_page)
    return ChallengeListResponse(
        items=[ChallengeResponse.model_validate(c) for c in challenges],
        total=total,
        page=page,
        per_page=min(per_page, settings.max_page_size),
    )


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
# Declared before /{challenge_id} so "submissions" is not read as an id.


@router.post("/submissions", response_model=SubmissionResponse, status_code=201)
async def create_submission(
    body: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
):
    submission = await workflow.create_submission(
        user_id=caller.user_id,
        challenge_id=body.challenge_id,
        media_file_id=body.media_file_id,
        video_url=body.video_url,
        description=body.description,
        thumbnail_url=body.thumbnail_url,
        metadata=body.metadata,
    )
    await db.commit()
    return SubmissionResponse.model_validate(submission)


@router.get("/submissions/my", response_model=SubmissionListResponse)
async def list_my_submissions(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    caller: Caller = Depends(get_caller),
    settings: Settings = Depends(get_settings),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
):
    """The caller's own submissions, newest first."""
    submissions, total = await workflow.find_user_submissions(
        caller.user_id, page=page, limit=per_page
    )
    return SubmissionListResponse(
        items=[SubmissionResponse.model_validate(s) for s in submissions],
        total=total,
        page=page,
        per_page=min(per_page, settings.max_page_size),
    )


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: UUID,
    caller: Caller = Depends(get_caller),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
):
    submission = await workflow.get_submission(submission_id)
    return SubmissionResponse.model_validate(submission)


@router.patch("/submissions/{submission_id}", response_model=SubmissionResponse)
async def review_submission(
    submission_id: UUID,
    body: SubmissionReview,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_reviewer),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
    fanout: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """Approve or reject a pending submission."""
    submission = await workflow.review(
        submission_id,
        reviewer_id=caller.user_id,
        status=body.status,
        score=body.score,
        feedback=body.feedback,
    )
    await db.commit()
    await fanout.after_commit()
    # A failed notification write leaves a retry job behind.
    _schedule_fanout(background_tasks, fanout)
    return SubmissionResponse.model_validate(submission)


@router.delete("/submissions/{submission_id}", response_model=MessageResponse)
async def delete_submission(
    submission_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
):
    """Withdraw one of the caller's pending submissions."""
    await workflow.remove(submission_id, caller.user_id)
    await db.commit()
    return MessageResponse(message="Submission deleted")


# ---------------------------------------------------------------------------
# Single challenge
# ---------------------------------------------------------------------------


@router.get("/{challenge_id}", response_model=ChallengeDetailResponse)
async def get_challenge(
    challenge_id: UUID,
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
):
    """Get challenge detail, including how many submissions it has."""
    challenge, submission_count = await manager.get(challenge_id)
    detail = ChallengeDetailResponse.model_validate(challenge)
    detail.submission_count = submission_count
    return detail


@router.patch("/{challenge_id}", response_model=ChallengeResponse)
async def update_challenge(
    challenge_id: UUID,
    body: ChallengeUpdate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_admin),
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
):
    challenge = await manager.update(challenge_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return ChallengeResponse.model_validate(challenge)


@router.delete("/{challenge_id}", response_model=MessageResponse)
async def delete_challenge(
    challenge_id: UUID,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_admin),
    manager: ChallengeLifecycleManager = Depends(get_challenge_manager),
):
    """Delete a challenge. Refused while submissions exist unless forced."""
    await manager.remove(challenge_id, force=force)
    await db.commit()
    return MessageResponse(message="Challenge deleted")


@router.get("/{challenge_id}/submissions", response_model=SubmissionListResponse)
async def list_challenge_submissions(
    challenge_id: UUID,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    caller: Caller = Depends(get_caller),
    settings: Settings = Depends(get_settings),
    workflow: SubmissionReviewWorkflow = Depends(get_submission_workflow),
):
    submissions, total = await workflow.find_challenge_submissions(
        challenge_id, page=page, limit=per_page
    )
    return SubmissionListResponse(
        items=[SubmissionResponse.model_validate(s) for s in submissions],
        total=total,
        page=page,
        per_page=min(per_page, settings.max_page_size),
    )

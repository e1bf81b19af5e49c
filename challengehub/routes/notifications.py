"""Notification endpoints for the calling user."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.auth import Caller, get_caller
from challengehub.config import Settings, get_settings
from challengehub.database import get_db
from challengehub.dependencies import get_fanout_engine
from challengehub.schemas import (
    MarkAllReadResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdate,
    UnreadCountResponse,
)
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.state_machine import NotificationType

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    type: NotificationType | None = Query(None),
    is_read: bool | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    caller: Caller = Depends(get_caller),
    settings: Settings = Depends(get_settings),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """List notifications for the caller, newest first."""
    items, total, unread_count = await engine.find_by_user(
        caller.user_id,
        notification_type=type,
        is_read=is_read,
        page=page,
        limit=per_page,
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        unread_count=unread_count,
        page=page,
        per_page=min(per_page, settings.max_page_size),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    caller: Caller = Depends(get_caller),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """Get the number of unread notifications for the caller."""
    return UnreadCountResponse(count=await engine.get_unread_count(caller.user_id))


@router.patch("/mark-all/read", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """Mark all of the caller's notifications as read."""
    updated = await engine.mark_all_read(caller.user_id)
    await db.commit()
    await engine.after_commit()
    return MarkAllReadResponse(updated=updated)


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: UUID,
    caller: Caller = Depends(get_caller),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    notification = await engine.get(notification_id, caller.user_id)
    return NotificationResponse.model_validate(notification)


@router.patch("/{notification_id}", response_model=NotificationResponse)
async def update_notification(
    notification_id: UUID,
    body: NotificationUpdate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    """Mark a single notification read or unread."""
    notification = await engine.mark_read(notification_id, caller.user_id, is_read=body.is_read)
    await db.commit()
    await engine.after_commit()
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    engine: NotificationFanoutEngine = Depends(get_fanout_engine),
):
    await engine.remove(notification_id, caller.user_id)
    await db.commit()
    await engine.after_commit()
    return MessageResponse(message="Notification deleted")

"""In-app notification inbox."""

from __future__ import annotations

import uuid

from fastapi import APIRouter

from app.api import deps, errors
from app.core.exceptions import BookingEngineError
from app.schemas.notification import MarkAllReadResponse, NotificationRead, UnreadCount
from app.services import notification_service

router = APIRouter()


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
    unread_only: bool = False,
) -> list[NotificationRead]:
    notifications = await notification_service.list_for_user(
        session, user_id=current_user.id, unread_only=unread_only
    )
    return [NotificationRead.model_validate(item) for item in notifications]


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> UnreadCount:
    count = await notification_service.unread_count(session, user_id=current_user.id)
    return UnreadCount(unread=count)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    session: deps.SessionDep, current_user: deps.CurrentUser
) -> MarkAllReadResponse:
    updated = await notification_service.mark_all_read(session, user_id=current_user.id)
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: uuid.UUID,
    session: deps.SessionDep,
    current_user: deps.CurrentUser,
) -> NotificationRead:
    try:
        notification = await notification_service.mark_read(
            session, notification_id=notification_id, user_id=current_user.id
        )
    except BookingEngineError as exc:
        raise errors.as_http_exception(exc) from exc
    return NotificationRead.model_validate(notification)

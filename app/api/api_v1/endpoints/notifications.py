from typing import Any
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.schemas.auth import Principal
from app.schemas.base import Message, Pagination
from app.schemas.notification import Notification, NotificationList, UnreadCount
from app.services import notification_service
from uuid import UUID

router = APIRouter()

@router.get("/", response_model=NotificationList)
async def get_notifications(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Notifications per page"),
    unread_only: bool = Query(False, description="Only unread notifications")
) -> Any:
    """
    The caller's web notifications, newest first.
    """
    notifications, total = await notification_service.list_notifications(
        db, principal, page=page, limit=limit, unread_only=unread_only
    )
    return NotificationList(notifications=notifications, pagination=Pagination.build(page, limit, total))

@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    return UnreadCount(unread=await notification_service.unread_count(db, principal))

@router.patch("/read-all", response_model=Message)
async def mark_all_read(
    *,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    updated = await notification_service.mark_all_read(db, principal)
    return Message(message=f"{updated} notifications marked as read")

@router.patch("/{notification_id}/read", response_model=Notification)
async def mark_read(
    *,
    db: AsyncSession = Depends(get_db),
    notification_id: UUID = Path(..., description="The ID of the notification"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    return await notification_service.mark_read(db, principal, notification_id)

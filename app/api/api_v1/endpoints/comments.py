from typing import Any
from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from app.core.database import get_db
from app.core.auth import get_current_principal
from app.schemas.auth import Principal
from app.schemas.comment import Comment, CommentCreate, CommentList, MarkedRead
from app.services import comment_service
from app.services.notification_service import NotificationDispatcher, get_notifier
from uuid import UUID

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/cases/{case_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    comment_in: CommentCreate,
    principal: Principal = Depends(get_current_principal),
    notifier: NotificationDispatcher = Depends(get_notifier)
) -> Any:
    """
    Post a comment or a file link on a case.

    Only staff may post internal notes.
    """
    logger.info(f"Comment on case {case_id} posted by user: {principal.user_id}")
    return await comment_service.add_comment(db, principal, case_id, comment_in, notifier=notifier)

@router.get("/cases/{case_id}/comments", response_model=CommentList)
async def get_comments(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    The comment thread of a case, oldest first. Clients do not see internal notes.
    """
    comments = await comment_service.list_comments(db, principal, case_id)
    return CommentList(comments=comments, total=len(comments))

@router.put("/{comment_id}/read", response_model=Comment)
async def mark_comment_read(
    *,
    db: AsyncSession = Depends(get_db),
    comment_id: UUID = Path(..., description="The ID of the comment"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    return await comment_service.mark_comment_read(db, principal, comment_id)

@router.put("/cases/{case_id}/read-all", response_model=MarkedRead)
async def mark_all_comments_read(
    *,
    db: AsyncSession = Depends(get_db),
    case_id: UUID = Path(..., description="The ID of the case"),
    principal: Principal = Depends(get_current_principal)
) -> Any:
    """
    Mark every comment from the other side of the thread as read.
    """
    updated = await comment_service.mark_all_read(db, principal, case_id)
    return MarkedRead(updated=updated)

"""
Web notification dispatch.

Notifications are written after the primary transaction has committed, in a
session of their own. A failure here is logged and dropped; it never undoes
or blocks the state change that triggered it.
"""

import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal
from app.core.exceptions import NotFoundError
from app.crud import notification as notification_crud
from app.db.models import Case, ClientProfile, DesignerProfile, NotificationLog
from app.schemas.auth import Principal
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: str,
        purpose: str,
        title: str,
        body: str,
        action_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        language: str = "en",
    ) -> Optional[NotificationLog]:
        """
        Create a web notification for ``user_id``. Returns None on failure.
        """
        try:
            async with self.session_factory() as session:
                notification = NotificationLog(
                    user_id=str(user_id),
                    channel="web",
                    purpose=purpose,
                    title=title,
                    body=body,
                    action_url=action_url,
                    meta=metadata or {},
                    language=language,
                )
                session.add(notification)
                await session.commit()
                logger.info(f"Web notification {notification.id} created for user {user_id} ({purpose})")
                return notification
        except Exception as e:
            logger.error(f"Failed to create web notification for user {user_id} ({purpose}): {e}", exc_info=True)
            return None

    async def notify_client(
        self,
        case: Case,
        purpose: str,
        title: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[NotificationLog]:
        """
        Notify the client owning ``case``.
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ClientProfile.user_id, ClientProfile.preferred_language)
                    .where(ClientProfile.id == case.client_profile_id)
                )
                row = result.one_or_none()
        except Exception as e:
            logger.error(f"Could not resolve client for case {case.id}: {e}", exc_info=True)
            return None

        if row is None:
            logger.warning(f"Case {case.id} has no client profile to notify")
            return None

        user_id, language = row
        return await self.notify(
            user_id,
            purpose,
            title,
            body,
            action_url=f"/cases/{case.id}",
            metadata={"case_id": str(case.id), "case_number": case.case_number, **(metadata or {})},
            language=language or "en",
        )

    async def notify_admins(
        self,
        purpose: str,
        title: str,
        body: str,
        action_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationLog]:
        """
        Notify every admin designer.
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(DesignerProfile.user_id, DesignerProfile.preferred_language)
                    .where(DesignerProfile.is_admin.is_(True))
                )
                admins = result.all()
        except Exception as e:
            logger.error(f"Could not resolve admins for {purpose} notification: {e}", exc_info=True)
            return []

        sent = []
        for user_id, language in admins:
            notification = await self.notify(
                user_id, purpose, title, body,
                action_url=action_url, metadata=metadata, language=language or "en",
            )
            if notification is not None:
                sent.append(notification)
        return sent


_dispatcher = NotificationDispatcher()


def get_notifier() -> NotificationDispatcher:
    """
    FastAPI dependency returning the process-wide dispatcher.
    """
    return _dispatcher


async def list_notifications(db: AsyncSession, principal: Principal, page: int = 1, limit: int = 20,
                             unread_only: bool = False):
    skip = (page - 1) * limit
    return await notification_crud.get_notifications(
        db, principal.user_id, skip=skip, limit=limit, unread_only=unread_only
    )


async def unread_count(db: AsyncSession, principal: Principal) -> int:
    return await notification_crud.count_unread(db, principal.user_id)


async def mark_read(db: AsyncSession, principal: Principal, notification_id: UUID) -> NotificationLog:
    notification = await notification_crud.get_notification(db, notification_id, principal.user_id)
    if notification is None:
        raise NotFoundError("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, principal: Principal) -> int:
    updated = await notification_crud.mark_all_read(db, principal.user_id)
    await db.commit()
    logger.info(f"Marked {updated} notifications read for user {principal.user_id}")
    return updated

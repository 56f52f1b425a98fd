"""
Case comment threads and designer assignment.

Clients and staff talk on a per-case thread. Staff may leave internal notes
that clients never see; an admin assigning a case to a designer is recorded
as one of those notes.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.policy import authorize
from app.crud import comment as comment_crud
from app.db.models import ActorKind, Case, CaseComment, DesignerProfile
from app.schemas.auth import Principal
from app.schemas.comment import CommentCreate
from app.services import case_workflow
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000

_STAFF_AUTHORS = (ActorKind.designer, ActorKind.admin)


def _new_comment(case: Case, principal: Principal, **fields) -> CaseComment:
    author_kind, profile_id = case_workflow.actor_of(principal)
    comment = CaseComment(case_id=case.id, author_kind=author_kind, **fields)
    if author_kind == ActorKind.client:
        comment.client_profile_id = profile_id
    else:
        comment.designer_profile_id = profile_id
    return comment


async def add_comment(
    db: AsyncSession,
    principal: Principal,
    case_id: UUID,
    comment_in: CommentCreate,
    notifier=None,
) -> CaseComment:
    """
    Post a comment, a file link, or both on a case thread.
    """
    text = (comment_in.comment or "").strip()
    if not text and not comment_in.file_url:
        raise ValidationError("Comment or file is required", errors={"comment": "Comment or file is required"})
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment must be less than {MAX_COMMENT_LENGTH} characters",
            errors={"comment": f"At most {MAX_COMMENT_LENGTH} characters"},
        )

    async with atomic(db):
        case = await case_workflow.load_case(db, case_id)
        authorize(principal, "comment.create", case.client_profile_id)
        if comment_in.is_internal:
            authorize(principal, "comment.internal")

        comment = _new_comment(
            case,
            principal,
            comment=text or None,
            file_url=comment_in.file_url,
            file_name=comment_in.file_name,
            file_size=comment_in.file_size,
            is_internal=comment_in.is_internal,
        )
        db.add(comment)
        await db.flush()
        await db.refresh(comment, ["client_profile", "designer_profile"])

    logger.info(f"Comment {comment.id} added to case {case.case_number} by {principal.role.value} {principal.profile_id}")

    if notifier is not None and not comment.is_internal:
        title = "New comment on your case"
        body = f"There is a new message on case {case.case_number}."
        if principal.is_client:
            await notifier.notify_admins(
                "comment_added", title, body,
                action_url=f"/cases/{case.id}",
                metadata={"case_id": str(case.id), "comment_id": str(comment.id)},
            )
        else:
            await notifier.notify_client(case, "comment_added", title, body, metadata={"comment_id": str(comment.id)})
    return comment


async def list_comments(db: AsyncSession, principal: Principal, case_id: UUID) -> List[CaseComment]:
    case = await case_workflow.load_case(db, case_id)
    authorize(principal, "comment.read", case.client_profile_id)
    return await comment_crud.get_case_comments(db, case.id, include_internal=principal.is_staff)


async def mark_comment_read(db: AsyncSession, principal: Principal, comment_id: UUID) -> CaseComment:
    """
    Mark a single comment as read. Nobody marks their own comment.
    """
    async with atomic(db):
        comment = await comment_crud.get_comment(db, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        case = await case_workflow.load_case(db, comment.case_id)
        authorize(principal, "comment.read", case.client_profile_id)

        if principal.is_client:
            if comment.is_internal:
                raise NotFoundError("Comment not found")
            if comment.author_kind == ActorKind.client:
                raise InvalidStateError("Cannot mark your own comment as read")
        elif comment.author_kind in _STAFF_AUTHORS and comment.designer_profile_id == principal.profile_id:
            raise InvalidStateError("Cannot mark your own comment as read")

        if not comment.is_read:
            comment.is_read = True
            comment.read_at = utcnow()

    return comment


async def mark_all_read(db: AsyncSession, principal: Principal, case_id: UUID) -> int:
    """
    Mark everything the other side wrote on a case as read.
    """
    async with atomic(db):
        case = await case_workflow.load_case(db, case_id)
        authorize(principal, "comment.read", case.client_profile_id)
        if principal.is_client:
            updated = await comment_crud.mark_case_comments_read(db, case.id, _STAFF_AUTHORS)
        else:
            updated = await comment_crud.mark_case_comments_read(db, case.id, (ActorKind.client,))

    logger.info(f"{updated} comments on case {case.case_number} marked read by {principal.role.value} {principal.profile_id}")
    return updated


async def assign_case(
    db: AsyncSession,
    principal: Principal,
    case_id: UUID,
    designer_profile_id: UUID,
    notes: Optional[str] = None,
    notifier=None,
) -> CaseComment:
    """
    Hand a case to a designer. The assignment is kept as an internal note.
    """
    authorize(principal, "case.assign")

    async with atomic(db):
        case = await case_workflow.load_case(db, case_id)
        designer = await db.get(DesignerProfile, designer_profile_id)
        if designer is None:
            raise NotFoundError("Designer not found")

        text = f"Case assigned to {designer.name}"
        if notes:
            text += f"\nNotes: {notes}"
        comment = _new_comment(case, principal, comment=text, is_internal=True)
        db.add(comment)
        await db.flush()
        await db.refresh(comment, ["client_profile", "designer_profile"])

    logger.info(f"Case {case.case_number} assigned to designer {designer.id} by admin {principal.profile_id}")

    if notifier is not None:
        await notifier.notify(
            designer.user_id,
            "case_assigned",
            "Case assigned to you",
            f"Case {case.case_number} has been assigned to you.",
            action_url=f"/cases/{case.id}",
            metadata={"case_id": str(case.id), "case_number": case.case_number},
            language=designer.preferred_language or "en",
        )
    return comment

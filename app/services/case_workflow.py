"""
Case status state machine.

Two edge tables drive every status change:

* ``MANUAL_TRANSITIONS`` - what a client or a designer may request directly,
  keyed by current status and role. Admins use the designer edges.
* ``WORKFLOW_TRANSITIONS`` - what quote and payment operations may do to a
  case as a side effect.

``record_transition`` is the only place ``Case.status`` is written. It always
appends exactly one ``CaseStatusHistory`` row in the caller's transaction.
"""

import logging
import secrets
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import atomic
from app.core.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.policy import authorize
from app.crud import case as case_crud
from app.db.models import (
    ActorKind,
    Case,
    CaseStatus,
    CaseStatusHistory,
    DeliveryMethod,
    GuideType,
    ProcedureCategory,
    RequiredService,
)
from app.schemas.auth import Principal, Role
from app.schemas.case import CaseCreate, CaseUpdate
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

S = CaseStatus

CLIENT = "client"
DESIGNER = "designer"

TERMINAL_STATUSES: FrozenSet[CaseStatus] = frozenset({S.completed, S.cancelled, S.refunded})

MANUAL_TRANSITIONS: Dict[CaseStatus, Dict[str, FrozenSet[CaseStatus]]] = {
    S.draft: {
        CLIENT: frozenset({S.submitted, S.cancelled}),
        DESIGNER: frozenset(),
    },
    S.submitted: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.study_in_progress, S.cancelled}),
    },
    S.pending_study_payment: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.study_in_progress: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.study_completed, S.pending_response, S.cancelled}),
    },
    S.study_completed: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.quote_pending: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.quote_sent: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.quote_accepted: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.quote_rejected: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.quote_pending, S.cancelled}),
    },
    S.pending_production_payment: {
        CLIENT: frozenset({S.cancelled}),
        DESIGNER: frozenset({S.cancelled}),
    },
    S.in_production: {
        CLIENT: frozenset(),
        DESIGNER: frozenset({S.pending_response, S.production_completed, S.cancelled}),
    },
    S.pending_response: {
        CLIENT: frozenset(),
        DESIGNER: frozenset({S.study_in_progress, S.in_production, S.production_completed, S.cancelled}),
    },
    S.production_completed: {
        CLIENT: frozenset(),
        DESIGNER: frozenset({S.ready_for_pickup, S.out_for_delivery, S.cancelled}),
    },
    S.ready_for_pickup: {
        CLIENT: frozenset({S.delivered}),
        DESIGNER: frozenset({S.delivered, S.cancelled}),
    },
    S.out_for_delivery: {
        CLIENT: frozenset({S.delivered}),
        DESIGNER: frozenset({S.delivered, S.cancelled}),
    },
    S.delivered: {
        CLIENT: frozenset({S.completed}),
        DESIGNER: frozenset({S.completed}),
    },
    # Decided through the refund operations only
    S.refund_requested: {
        CLIENT: frozenset(),
        DESIGNER: frozenset(),
    },
}

_REFUNDABLE_STAGES = (
    S.in_production,
    S.pending_response,
    S.production_completed,
    S.ready_for_pickup,
    S.out_for_delivery,
    S.delivered,
)

WORKFLOW_TRANSITIONS: Dict[CaseStatus, FrozenSet[CaseStatus]] = {
    S.draft: frozenset({S.pending_study_payment}),
    S.pending_study_payment: frozenset({S.submitted}),
    S.study_completed: frozenset({S.quote_sent}),
    S.quote_pending: frozenset({S.quote_sent}),
    S.quote_sent: frozenset({S.quote_accepted, S.quote_rejected, S.cancelled}),
    S.quote_rejected: frozenset({S.quote_sent}),
    S.quote_accepted: frozenset({S.pending_production_payment}),
    S.pending_production_payment: frozenset({S.in_production, S.quote_accepted}),
    S.refund_requested: frozenset({S.refunded, S.in_production}),
    **{stage: frozenset({S.refund_requested}) for stage in _REFUNDABLE_STAGES},
}

_STATUS_TIMESTAMPS = {
    S.delivered: "delivered_at",
    S.completed: "completed_at",
    S.cancelled: "cancelled_at",
}

_ACTOR_KINDS = {
    Role.client: ActorKind.client,
    Role.designer: ActorKind.designer,
    Role.admin: ActorKind.admin,
}


def _role_key(principal: Principal) -> str:
    return CLIENT if principal.is_client else DESIGNER


def allowed_next_statuses(case: Case, principal: Principal) -> FrozenSet[CaseStatus]:
    """
    Statuses ``principal`` may move ``case`` to by a direct request.
    """
    status = CaseStatus(case.status)
    if status in TERMINAL_STATUSES:
        return frozenset()
    allowed = MANUAL_TRANSITIONS.get(status, {}).get(_role_key(principal), frozenset())
    if status == S.draft and not case.is_draft:
        allowed = allowed - {S.submitted}
    return allowed


def actor_of(principal: Principal) -> Tuple[ActorKind, UUID]:
    return _ACTOR_KINDS[principal.role], principal.profile_id


_UNSET = object()


def record_transition(
    db: AsyncSession,
    case: Case,
    to_status: CaseStatus,
    principal: Principal,
    notes: Optional[str] = None,
    from_status=_UNSET,
    actor_kind: Optional[ActorKind] = None,
) -> CaseStatusHistory:
    """
    Set ``case.status`` and stage the matching history row.

    Nothing is committed here; the caller's transaction decides. ``from_status``
    defaults to the case's current status and may be passed as None for the
    initial submission.
    """
    previous = CaseStatus(case.status)
    kind, actor_id = actor_of(principal)
    now = utcnow()

    case.status = to_status
    if to_status in _STATUS_TIMESTAMPS:
        setattr(case, _STATUS_TIMESTAMPS[to_status], now)

    entry = CaseStatusHistory(
        case_id=case.id,
        from_status=previous if from_status is _UNSET else from_status,
        to_status=to_status,
        actor_kind=actor_kind or kind,
        actor_id=actor_id,
        notes=notes or f"Status changed to {to_status.value}",
        created_at=now,
    )
    db.add(entry)
    logger.info(
        f"Case {case.case_number}: {previous.value} -> {to_status.value} by {entry.actor_kind.value} {actor_id}"
    )
    return entry


def ensure_workflow_transition(case: Case, to_status: CaseStatus) -> None:
    """
    Raise InvalidTransitionError unless an operation may move ``case`` to ``to_status``.
    """
    current = CaseStatus(case.status)
    allowed = WORKFLOW_TRANSITIONS.get(current, frozenset())
    if to_status not in allowed:
        raise InvalidTransitionError(current, to_status, allowed)


def workflow_transition(
    db: AsyncSession,
    case: Case,
    to_status: CaseStatus,
    principal: Principal,
    notes: Optional[str] = None,
) -> CaseStatusHistory:
    ensure_workflow_transition(case, to_status)
    return record_transition(db, case, to_status, principal, notes)


def generate_case_number() -> str:
    return f"CASE-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


def validate_case_completeness(case: Case) -> Dict[str, str]:
    """
    Field-level problems preventing submission; empty when the case is complete.
    """
    errors: Dict[str, str] = {}

    def _check_enum(field: str, enum_cls, label: str):
        value = getattr(case, field)
        if not value:
            errors[field] = f"{label} is required"
        elif value not in {e.value for e in enum_cls}:
            errors[field] = f"Invalid {label.lower()}: {value}"

    _check_enum("procedure_category", ProcedureCategory, "Procedure category")
    _check_enum("guide_type", GuideType, "Guide type")
    _check_enum("required_service", RequiredService, "Required service")

    if case.procedure_category in (ProcedureCategory.single_implant.value, ProcedureCategory.multiple_implant.value):
        if not case.teeth_numbers:
            errors["teeth_numbers"] = "Teeth selection is required for this procedure"

    if case.required_service == RequiredService.full_solution.value:
        if not case.delivery_method:
            errors["delivery_method"] = "Delivery method is required for full solution"
        elif case.delivery_method == DeliveryMethod.delivery.value and not case.delivery_address_id:
            errors["delivery_address_id"] = "Delivery address is required"
        elif case.delivery_method == DeliveryMethod.pickup.value and not case.pickup_branch_id:
            errors["pickup_branch_id"] = "Pickup branch is required"

    return errors


def ensure_case_complete(case: Case) -> None:
    errors = validate_case_completeness(case)
    if errors:
        raise ValidationError("Case is incomplete", errors=errors)


def _case_fields(case_in) -> dict:
    data = case_in.model_dump(exclude_unset=True, exclude={"is_draft"})
    return {k: getattr(v, "value", v) for k, v in data.items()}


async def load_case(db: AsyncSession, case_id: UUID, for_update: bool = False) -> Case:
    if for_update:
        case = await case_crud.get_case_for_update(db, case_id)
    else:
        case = await case_crud.get_case(db, case_id)
    if case is None:
        raise NotFoundError("Case not found")
    return case


async def create_case(db: AsyncSession, principal: Principal, case_in: CaseCreate, notifier=None) -> Case:
    """
    Create a case for the calling client, as a draft or directly submitted.
    """
    authorize(principal, "case.create")

    async with atomic(db):
        case = Case(
            case_number=generate_case_number(),
            client_profile_id=principal.profile_id,
            status=S.draft,
            is_draft=True,
            **_case_fields(case_in),
        )
        db.add(case)

        if not case_in.is_draft:
            ensure_case_complete(case)
            await db.flush()
            _submit(db, case, principal)
        logger.info(f"Case {case.case_number} created by client {principal.profile_id} (draft={case.is_draft})")

    if not case.is_draft and notifier is not None:
        await _notify_submitted(notifier, case)
    return case


def _submit(db: AsyncSession, case: Case, principal: Principal) -> CaseStatusHistory:
    case.is_draft = False
    case.submitted_at = utcnow()
    return record_transition(
        db, case, S.submitted, principal, notes="Case submitted", from_status=None
    )


async def _notify_submitted(notifier, case: Case) -> None:
    await notifier.notify_admins(
        "case_submitted",
        "New case submitted",
        f"Case {case.case_number} was submitted and is waiting for review.",
        action_url=f"/cases/{case.id}",
        metadata={"case_id": str(case.id), "case_number": case.case_number},
    )


async def submit_case(db: AsyncSession, principal: Principal, case_id: UUID, notifier=None) -> Case:
    """
    Submit a complete draft for study.
    """
    async with atomic(db):
        case = await load_case(db, case_id, for_update=True)
        authorize(principal, "case.submit", case.client_profile_id)

        if not case.is_draft or CaseStatus(case.status) != S.draft:
            raise InvalidStateError("Only draft cases can be submitted", current_status=CaseStatus(case.status).value)
        ensure_case_complete(case)
        _submit(db, case, principal)

    if notifier is not None:
        await _notify_submitted(notifier, case)
    return case


async def get_case(db: AsyncSession, principal: Principal, case_id: UUID) -> Case:
    case = await load_case(db, case_id)
    authorize(principal, "case.read", case.client_profile_id)
    return case


async def list_cases(
    db: AsyncSession,
    principal: Principal,
    page: int = 1,
    limit: int = 20,
    status: Optional[CaseStatus] = None,
    client_profile_id: Optional[UUID] = None,
    search: Optional[str] = None,
) -> Tuple[List[Case], int]:
    """
    Clients see their own cases; staff see every case that has left draft.
    """
    authorize(principal, "case.list")

    filters = {"status": status, "search": search}
    if principal.is_client:
        filters["client_profile_id"] = principal.profile_id
    else:
        filters["client_profile_id"] = client_profile_id
        filters["exclude_drafts"] = True

    return await case_crud.get_cases(db, skip=(page - 1) * limit, limit=limit, filters=filters)


async def update_case(db: AsyncSession, principal: Principal, case_id: UUID, case_in: CaseUpdate) -> Case:
    async with atomic(db):
        case = await load_case(db, case_id, for_update=True)
        authorize(principal, "case.update", case.client_profile_id)

        if not case.is_draft or CaseStatus(case.status) != S.draft:
            raise InvalidStateError("Only draft cases can be edited")

        for field, value in _case_fields(case_in).items():
            setattr(case, field, value)
        case.updated_at = utcnow()

    logger.info(f"Case {case.case_number} updated by client {principal.profile_id}")
    return case


async def delete_case(db: AsyncSession, principal: Principal, case_id: UUID) -> None:
    """
    Soft delete. Clients may only drop their own drafts; admins may drop any case.
    """
    async with atomic(db):
        case = await load_case(db, case_id, for_update=True)
        authorize(principal, "case.delete", case.client_profile_id)

        if principal.is_client and not case.is_draft:
            raise InvalidStateError("Only draft cases can be deleted")
        case.deleted_at = utcnow()

    logger.info(f"Case {case.case_number} deleted by {principal.role.value} {principal.profile_id}")


async def get_allowed_statuses(db: AsyncSession, principal: Principal, case_id: UUID) -> Tuple[CaseStatus, List[CaseStatus]]:
    case = await load_case(db, case_id)
    authorize(principal, "case.read", case.client_profile_id)
    allowed = sorted(allowed_next_statuses(case, principal), key=lambda s: s.value)
    return CaseStatus(case.status), allowed


async def get_status_history(db: AsyncSession, principal: Principal, case_id: UUID) -> List[CaseStatusHistory]:
    case = await load_case(db, case_id)
    authorize(principal, "case.history", case.client_profile_id)
    return await case_crud.get_status_history(db, case.id)


# Client dashboard buckets. Drafts only count towards the total.
STATUS_GROUPS: Dict[str, FrozenSet[CaseStatus]] = {
    "pending": frozenset({
        S.submitted, S.pending_study_payment, S.quote_pending, S.quote_sent, S.pending_production_payment,
    }),
    "active": frozenset({
        S.study_in_progress, S.study_completed, S.quote_accepted, S.in_production, S.pending_response,
        S.production_completed, S.ready_for_pickup, S.out_for_delivery,
    }),
    "delivered": frozenset({S.delivered, S.completed}),
    "cancelled": frozenset({S.cancelled, S.quote_rejected, S.refund_requested, S.refunded}),
}


async def get_case_stats(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """
    Case counts for the calling client: grouped overview, per status, per
    procedure, and the five newest cases.
    """
    authorize(principal, "case.stats")

    by_status = await case_crud.count_by_status(db, client_profile_id=principal.profile_id)
    by_procedure = await case_crud.count_by_procedure(db, client_profile_id=principal.profile_id)
    overview = {"total": sum(by_status.values())}
    for group, statuses in STATUS_GROUPS.items():
        overview[group] = sum(count for status, count in by_status.items() if status in statuses)

    return {
        "overview": overview,
        "status_breakdown": {status.value: count for status, count in by_status.items()},
        "procedure_breakdown": {category or "unspecified": count for category, count in by_procedure.items()},
        "recent_cases": await case_crud.get_recent_cases(db, limit=5, client_profile_id=principal.profile_id),
    }


async def change_status(
    db: AsyncSession,
    principal: Principal,
    case_id: UUID,
    to_status: CaseStatus,
    notes: Optional[str] = None,
    notifier=None,
) -> Case:
    """
    Move a case along a manual edge for the caller's role.

    ``draft -> submitted`` goes through submission so the completeness rules
    apply.
    """
    async with atomic(db):
        case = await load_case(db, case_id, for_update=True)
        authorize(principal, "case.change_status", case.client_profile_id)

        current = CaseStatus(case.status)
        allowed = allowed_next_statuses(case, principal)
        if to_status not in allowed:
            logger.warning(
                f"Rejected transition {current.value} -> {to_status.value} on case {case.case_number} "
                f"by {principal.role.value} {principal.profile_id}"
            )
            raise InvalidTransitionError(current, to_status, allowed)

        if current == S.draft and to_status == S.submitted:
            ensure_case_complete(case)
            _submit(db, case, principal)
        else:
            record_transition(db, case, to_status, principal, notes)

    if notifier is not None:
        if current == S.draft and to_status == S.submitted:
            await _notify_submitted(notifier, case)
        elif principal.is_client:
            await notifier.notify_admins(
                "case_status_changed",
                "Case status updated",
                f"Client moved case {case.case_number} to {to_status.value}.",
                action_url=f"/cases/{case.id}",
                metadata={"case_id": str(case.id), "status": to_status.value},
            )
        else:
            await notifier.notify_client(
                case,
                "case_status_changed",
                "Case status updated",
                f"Your case {case.case_number} is now {to_status.value}.",
                metadata={"status": to_status.value},
            )
    return case


async def override_status(
    db: AsyncSession,
    principal: Principal,
    case_id: UUID,
    to_status: CaseStatus,
    reason: str,
    notifier=None,
) -> Case:
    """
    Admin-only move to any status, terminal ones included.
    """
    authorize(principal, "case.override_status")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required for status override", errors={"reason": "Reason is required"})

    async with atomic(db):
        case = await load_case(db, case_id, for_update=True)
        current = CaseStatus(case.status)
        if current == to_status:
            raise InvalidStateError(f"Case is already {current.value}")

        if to_status != S.draft:
            case.is_draft = False
        record_transition(
            db, case, to_status, principal,
            notes=f"Admin override: {reason}",
            actor_kind=ActorKind.admin,
        )

    logger.warning(
        f"Case {case.case_number} status overridden {current.value} -> {to_status.value} "
        f"by admin {principal.profile_id}: {reason}"
    )
    if notifier is not None:
        await notifier.notify_client(
            case,
            "case_status_changed",
            "Case status updated",
            f"Your case {case.case_number} is now {to_status.value}.",
            metadata={"status": to_status.value, "override": True},
        )
    return case

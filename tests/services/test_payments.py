from decimal import Decimal

import pytest

from app.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    ValidationError,
)
from app.crud import case as case_crud
from app.db.models import CaseStatus, PaymentStatus, PaymentType
from app.schemas.payment import ProductionPaymentCreate
from app.schemas.quote import QuoteCreate
from app.services import case_workflow, notification_service, payment_service, quote_service
from app.services.notification_service import NotificationDispatcher

pytestmark = pytest.mark.asyncio


def _production_in(case, quote) -> ProductionPaymentCreate:
    return ProductionPaymentCreate(
        case_id=case.id,
        quote_id=quote.id,
        amount=quote.total_amount,
        proof_url="https://files.example.com/proofs/production.pdf",
    )


def _broken_session_factory():
    raise RuntimeError("notification store unavailable")


class TestStudyPayment:
    async def test_upload_and_verify(self, db, make_case, study_payment_in, client_principal, admin_principal):
        case = await make_case(CaseStatus.draft)

        payment = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))

        assert payment.status == PaymentStatus.pending
        assert payment.payment_type == PaymentType.study_fee
        assert payment.payment_number.startswith("PAY-")
        assert payment.amount == Decimal("100.00")
        await db.refresh(case)
        assert case.status == CaseStatus.pending_study_payment
        assert case.is_draft is False

        payment = await payment_service.verify_payment(db, admin_principal, payment.id)

        assert payment.status == PaymentStatus.verified
        assert payment.verified_by_id == admin_principal.profile_id
        await db.refresh(case)
        assert case.status == CaseStatus.submitted

    async def test_amount_must_match_study_fee(self, db, make_case, study_payment_in, client_principal):
        case = await make_case(CaseStatus.draft)

        with pytest.raises(ValidationError) as exc_info:
            await payment_service.upload_study_payment(
                db, client_principal, study_payment_in(case.id, amount=Decimal("80"))
            )

        assert "amount" in exc_info.value.errors
        await db.refresh(case)
        assert case.status == CaseStatus.draft

    async def test_case_must_still_be_a_draft(self, db, make_case, study_payment_in, client_principal):
        case = await make_case(CaseStatus.submitted)

        with pytest.raises(InvalidStateError):
            await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))

    async def test_partial_draft_can_pay_study_fee(self, db, make_case, study_payment_in, client_principal):
        case = await make_case(CaseStatus.draft, procedure_category=None)

        payment = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))

        assert payment.status == PaymentStatus.pending
        await db.refresh(case)
        assert case.status == CaseStatus.pending_study_payment
        assert case.is_draft is False

    async def test_rejection_returns_case_to_submitted(
        self, db, make_case, study_payment_in, client_principal, admin_principal
    ):
        case = await make_case(CaseStatus.draft)
        first = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))

        rejected = await payment_service.reject_payment(db, admin_principal, first.id, "Illegible receipt")

        assert rejected.status == PaymentStatus.failed
        assert rejected.rejection_reason == "Illegible receipt"
        await db.refresh(case)
        assert case.status == CaseStatus.submitted

    async def test_other_client_cannot_upload(self, db, make_case, study_payment_in, other_client_principal):
        case = await make_case(CaseStatus.draft)

        with pytest.raises(AuthorizationError):
            await payment_service.upload_study_payment(db, other_client_principal, study_payment_in(case.id))


class TestProductionPayment:
    async def test_upload_verify_starts_production(self, db, in_production_case):
        case, quote, payment = await in_production_case()

        assert payment.status == PaymentStatus.verified
        assert payment.payment_type == PaymentType.production_fee
        assert payment.quote_id == quote.id
        await db.refresh(case)
        assert case.status == CaseStatus.in_production

    async def test_second_upload_is_refused_while_pending(self, db, make_quote, client_principal):
        case, quote = await make_quote()
        await quote_service.accept_quote(db, client_principal, quote.id)
        payment_in = _production_in(case, quote)
        await payment_service.upload_production_payment(db, client_principal, payment_in)

        with pytest.raises(InvalidStateError):
            await payment_service.upload_production_payment(db, client_principal, payment_in)

        await db.refresh(case)
        assert case.status == CaseStatus.pending_production_payment

    async def test_quote_must_be_accepted_first(self, db, make_quote, client_principal):
        case, quote = await make_quote()

        with pytest.raises(InvalidStateError):
            await payment_service.upload_production_payment(db, client_principal, _production_in(case, quote))

    async def test_rejection_returns_case_to_quote_accepted(self, db, make_quote, client_principal, admin_principal):
        case, quote = await make_quote()
        await quote_service.accept_quote(db, client_principal, quote.id)
        payment = await payment_service.upload_production_payment(db, client_principal, _production_in(case, quote))

        await payment_service.reject_payment(db, admin_principal, payment.id, "Amount not received")

        await db.refresh(case)
        assert case.status == CaseStatus.quote_accepted

        again = await payment_service.upload_production_payment(db, client_principal, _production_in(case, quote))
        assert again.status == PaymentStatus.pending

    async def test_only_pending_payments_are_decided(self, db, in_production_case, admin_principal):
        _, _, payment = await in_production_case()
        payment_id = payment.id

        with pytest.raises(InvalidStateError):
            await payment_service.verify_payment(db, admin_principal, payment_id)
        with pytest.raises(InvalidStateError):
            await payment_service.reject_payment(db, admin_principal, payment_id, "Too late")

    async def test_designers_cannot_verify(self, db, make_case, study_payment_in, client_principal, designer_principal):
        case = await make_case(CaseStatus.draft)
        payment = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))

        with pytest.raises(AuthorizationError):
            await payment_service.verify_payment(db, designer_principal, payment.id)


class TestRefunds:
    async def test_study_fee_is_non_refundable(
        self, db, make_case, study_payment_in, client_principal, admin_principal
    ):
        case = await make_case(CaseStatus.draft)
        payment = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))
        await payment_service.verify_payment(db, admin_principal, payment.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await payment_service.request_refund(db, client_principal, payment.id, "Changed my mind")

        assert exc_info.value.code == "non_refundable"

    async def test_approved_refund(self, db, in_production_case, client_principal, admin_principal):
        case, _, payment = await in_production_case()

        payment = await payment_service.request_refund(db, client_principal, payment.id, "Clinic closed")
        await db.refresh(case)
        assert case.status == CaseStatus.refund_requested

        payment = await payment_service.approve_refund(db, admin_principal, payment.id, Decimal("300"))

        assert payment.status == PaymentStatus.refunded
        assert payment.is_refunded is True
        assert payment.refunded_amount == Decimal("300.00")
        await db.refresh(case)
        assert case.status == CaseStatus.refunded

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("540.51")])
    async def test_refund_amount_bounds(self, db, in_production_case, client_principal, admin_principal, amount):
        _, _, payment = await in_production_case()
        await payment_service.request_refund(db, client_principal, payment.id, "Clinic closed")

        with pytest.raises(ValidationError):
            await payment_service.approve_refund(db, admin_principal, payment.id, amount)

    async def test_rejected_refund_resumes_production(self, db, in_production_case, client_principal, admin_principal):
        case, _, payment = await in_production_case()
        await payment_service.request_refund(db, client_principal, payment.id, "Clinic closed")

        payment = await payment_service.reject_refund(db, admin_principal, payment.id, "Guide already printed")

        assert payment.status == PaymentStatus.verified
        assert payment.refund_requested_at is None
        assert payment.refund_notes == "Refund rejected: Guide already printed"
        await db.refresh(case)
        assert case.status == CaseStatus.in_production

    async def test_second_open_request_is_refused(self, db, in_production_case, client_principal):
        _, _, payment = await in_production_case()
        await payment_service.request_refund(db, client_principal, payment.id, "Clinic closed")

        with pytest.raises(InvalidStateError):
            await payment_service.request_refund(db, client_principal, payment.id, "Still closed")

    async def test_refund_queue_lists_open_requests(self, db, in_production_case, client_principal, admin_principal):
        _, _, payment = await in_production_case()
        await payment_service.request_refund(db, client_principal, payment.id, "Clinic closed")

        payments, total = await payment_service.list_refund_requests(db, admin_principal)

        assert total == 1
        assert payments[0].id == payment.id


class TestRevenueReport:
    async def test_totals(self, db, make_case, study_payment_in, in_production_case, client_principal, admin_principal):
        _, _, production = await in_production_case()
        await payment_service.request_refund(db, client_principal, production.id, "Clinic closed")
        await payment_service.approve_refund(db, admin_principal, production.id, Decimal("200"))

        studied = await make_case(CaseStatus.draft)
        study = await payment_service.upload_study_payment(db, client_principal, study_payment_in(studied.id))
        await payment_service.verify_payment(db, admin_principal, study.id)

        pending = await make_case(CaseStatus.draft)
        await payment_service.upload_study_payment(db, client_principal, study_payment_in(pending.id))

        report = await payment_service.revenue_report(db, admin_principal)

        assert report["verified_total"] == Decimal("640.50")
        assert report["refunded_total"] == Decimal("200.00")
        assert report["net_total"] == Decimal("440.50")
        assert report["pending_count"] == 1
        by_type = {PaymentType(item["payment_type"]): item for item in report["by_type"]}
        assert by_type[PaymentType.study_fee]["total"] == Decimal("100.00")
        assert by_type[PaymentType.production_fee]["total"] == Decimal("540.50")

    async def test_clients_cannot_see_revenue(self, db, client_principal):
        with pytest.raises(AuthorizationError):
            await payment_service.revenue_report(db, client_principal)


class TestLifecycle:
    async def test_every_transition_leaves_one_history_row(
        self, db, make_case, study_payment_in, client_principal, designer_principal, admin_principal
    ):
        case = await make_case(CaseStatus.draft)
        study = await payment_service.upload_study_payment(db, client_principal, study_payment_in(case.id))
        await payment_service.verify_payment(db, admin_principal, study.id)
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.study_in_progress)
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.study_completed)
        quote = await quote_service.create_quote(
            db, admin_principal,
            QuoteCreate(case_id=case.id, design_fee=50, production_fee=300, delivery_fee=20),
        )
        await quote_service.accept_quote(db, client_principal, quote.id)
        production = await payment_service.upload_production_payment(db, client_principal, _production_in(case, quote))
        await payment_service.verify_payment(db, admin_principal, production.id)
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.production_completed)
        await case_workflow.change_status(db, designer_principal, case.id, CaseStatus.ready_for_pickup)
        await case_workflow.change_status(db, client_principal, case.id, CaseStatus.delivered)
        case = await case_workflow.change_status(db, client_principal, case.id, CaseStatus.completed)

        expected = [
            (CaseStatus.draft, CaseStatus.pending_study_payment),
            (CaseStatus.pending_study_payment, CaseStatus.submitted),
            (CaseStatus.submitted, CaseStatus.study_in_progress),
            (CaseStatus.study_in_progress, CaseStatus.study_completed),
            (CaseStatus.study_completed, CaseStatus.quote_sent),
            (CaseStatus.quote_sent, CaseStatus.quote_accepted),
            (CaseStatus.quote_accepted, CaseStatus.pending_production_payment),
            (CaseStatus.pending_production_payment, CaseStatus.in_production),
            (CaseStatus.in_production, CaseStatus.production_completed),
            (CaseStatus.production_completed, CaseStatus.ready_for_pickup),
            (CaseStatus.ready_for_pickup, CaseStatus.delivered),
            (CaseStatus.delivered, CaseStatus.completed),
        ]
        history = await case_crud.get_status_history(db, case.id)
        pairs = [(h.from_status, h.to_status) for h in history]
        assert sorted(pairs, key=str) == sorted(expected, key=str)
        assert case.status == CaseStatus.completed
        assert case.delivered_at is not None
        assert case.completed_at is not None


class TestNotifications:
    async def test_decisions_notify_client_and_admins(
        self, db, make_case, study_payment_in, notifier, client_principal, admin_principal
    ):
        case = await make_case(CaseStatus.draft)
        payment = await payment_service.upload_study_payment(
            db, client_principal, study_payment_in(case.id), notifier=notifier
        )
        await payment_service.verify_payment(db, admin_principal, payment.id, notifier=notifier)

        admin_inbox, admin_total = await notification_service.list_notifications(db, admin_principal)
        client_inbox, client_total = await notification_service.list_notifications(db, client_principal)

        assert admin_total == 1
        assert admin_inbox[0].purpose == "payment_uploaded"
        assert client_total == 1
        assert client_inbox[0].purpose == "payment_verified"
        assert client_inbox[0].meta["case_id"] == str(case.id)
        assert await notification_service.unread_count(db, client_principal) == 1

        await notification_service.mark_read(db, client_principal, client_inbox[0].id)
        assert await notification_service.unread_count(db, client_principal) == 0

    async def test_notification_failure_does_not_undo_the_change(
        self, db, make_case, study_payment_in, client_principal, admin_principal
    ):
        broken = NotificationDispatcher(_broken_session_factory)
        case = await make_case(CaseStatus.draft)
        payment = await payment_service.upload_study_payment(
            db, client_principal, study_payment_in(case.id), notifier=broken
        )

        payment = await payment_service.verify_payment(db, admin_principal, payment.id, notifier=broken)

        assert payment.status == PaymentStatus.verified
        await db.refresh(case)
        assert case.status == CaseStatus.submitted

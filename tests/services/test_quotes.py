from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import (
    AuthorizationError,
    ExpiredError,
    InvalidStateError,
    ValidationError,
)
from app.crud import case as case_crud
from app.db.models import CaseStatus
from app.schemas.quote import QuoteCreate, QuoteRevise
from app.services import quote_service
from app.utils.dates import ensure_aware, utcnow

pytestmark = pytest.mark.asyncio


class TestCreateQuote:
    async def test_totals_and_case_status(self, db, make_quote):
        case, quote = await make_quote(study_fee=100, design_fee=50, production_fee=300, delivery_fee=20)

        assert quote.subtotal == Decimal("470.00")
        assert quote.vat_amount == Decimal("70.50")
        assert quote.total_amount == Decimal("540.50")
        assert quote.is_sent is True
        assert quote.quote_number.startswith("QUOTE-")
        assert case.status == CaseStatus.quote_sent

        latest = (await case_crud.get_status_history(db, case.id))[0]
        assert (latest.from_status, latest.to_status) == (CaseStatus.study_completed, CaseStatus.quote_sent)

    async def test_defaults(self, db, make_case, admin_principal):
        case = await make_case(CaseStatus.study_completed)

        quote = await quote_service.create_quote(
            db, admin_principal, QuoteCreate(case_id=case.id, design_fee=200)
        )

        assert quote.study_fee == Decimal("100")
        assert quote.vat_rate == Decimal("15.00")
        assert quote.total_amount == Decimal("345.00")
        remaining = ensure_aware(quote.valid_until) - utcnow()
        assert timedelta(days=29) < remaining <= timedelta(days=30)

    async def test_manual_discount(self, db, make_quote):
        _, quote = await make_quote(discount_amount=70, discount_reason="Loyal client")

        assert quote.discount_amount == Decimal("70.00")
        assert quote.subtotal == Decimal("400.00")
        assert quote.total_amount == Decimal("460.00")

    async def test_case_must_have_completed_study(self, db, make_case, admin_principal):
        case = await make_case(CaseStatus.submitted)

        with pytest.raises(InvalidStateError):
            await quote_service.create_quote(db, admin_principal, QuoteCreate(case_id=case.id, design_fee=10))

    async def test_only_admins_create_quotes(self, db, make_case, designer_principal):
        case = await make_case(CaseStatus.study_completed)

        with pytest.raises(AuthorizationError):
            await quote_service.create_quote(db, designer_principal, QuoteCreate(case_id=case.id, design_fee=10))


class TestAcceptQuote:
    async def test_accept(self, db, make_quote, client_principal):
        case, quote = await make_quote()

        quote = await quote_service.accept_quote(db, client_principal, quote.id)

        assert quote.is_accepted is True
        assert quote.accepted_at is not None
        await db.refresh(case)
        assert case.status == CaseStatus.quote_accepted

    async def test_second_accept_fails_and_leaves_case_alone(self, db, make_quote, client_principal):
        case, quote = await make_quote()
        await quote_service.accept_quote(db, client_principal, quote.id)
        history_before = len(await case_crud.get_status_history(db, case.id))

        with pytest.raises(InvalidStateError):
            await quote_service.accept_quote(db, client_principal, quote.id)

        await db.refresh(case)
        assert case.status == CaseStatus.quote_accepted
        assert len(await case_crud.get_status_history(db, case.id)) == history_before

    async def test_expired_quote_cancels_case(self, db, make_quote, client_principal):
        case, quote = await make_quote()
        quote.valid_until = utcnow() - timedelta(days=1)
        await db.commit()

        with pytest.raises(ExpiredError):
            await quote_service.accept_quote(db, client_principal, quote.id)

        await db.refresh(case)
        await db.refresh(quote)
        assert case.status == CaseStatus.cancelled
        assert case.cancelled_at is not None
        assert quote.is_accepted is False
        latest = (await case_crud.get_status_history(db, case.id))[0]
        assert latest.to_status == CaseStatus.cancelled

    async def test_other_client_cannot_accept(self, db, make_quote, other_client_principal):
        _, quote = await make_quote()

        with pytest.raises(AuthorizationError):
            await quote_service.accept_quote(db, other_client_principal, quote.id)


class TestRejectQuote:
    async def test_reject_with_revision_request(self, db, make_quote, client_principal):
        case, quote = await make_quote()

        quote = await quote_service.reject_quote(db, client_principal, quote.id, "Too expensive")

        assert quote.is_rejected is True
        assert quote.rejection_reason == "Too expensive"
        await db.refresh(case)
        assert case.status == CaseStatus.quote_rejected

    async def test_reject_without_revision_cancels_case(self, db, make_quote, client_principal):
        case, quote = await make_quote()

        await quote_service.reject_quote(db, client_principal, quote.id, "Going elsewhere", request_revision=False)

        await db.refresh(case)
        assert case.status == CaseStatus.cancelled

    async def test_reason_is_required(self, db, make_quote, client_principal):
        _, quote = await make_quote()

        with pytest.raises(ValidationError):
            await quote_service.reject_quote(db, client_principal, quote.id, "  ")

    async def test_accepted_quote_cannot_be_rejected(self, db, make_quote, client_principal):
        _, quote = await make_quote()
        await quote_service.accept_quote(db, client_principal, quote.id)

        with pytest.raises(InvalidStateError):
            await quote_service.reject_quote(db, client_principal, quote.id, "Changed my mind")


class TestReviseQuote:
    async def test_revise_rejected_quote(self, db, make_quote, client_principal, admin_principal):
        case, quote = await make_quote()
        await quote_service.reject_quote(db, client_principal, quote.id, "Production fee too high")

        quote = await quote_service.revise_quote(
            db, admin_principal, quote.id, QuoteRevise(production_fee=200)
        )

        assert quote.is_rejected is False
        assert quote.rejection_reason is None
        assert quote.is_sent is True
        assert quote.design_fee == Decimal("50")
        assert quote.subtotal == Decimal("370.00")
        assert quote.total_amount == Decimal("425.50")
        await db.refresh(case)
        assert case.status == CaseStatus.quote_sent

    async def test_only_rejected_quotes_can_be_revised(self, db, make_quote, admin_principal):
        _, quote = await make_quote()

        with pytest.raises(InvalidStateError):
            await quote_service.revise_quote(db, admin_principal, quote.id, QuoteRevise(design_fee=10))

    async def test_revised_quote_can_be_accepted(self, db, make_quote, client_principal, admin_principal):
        case, quote = await make_quote()
        await quote_service.reject_quote(db, client_principal, quote.id, "Too expensive")
        await quote_service.revise_quote(db, admin_principal, quote.id, QuoteRevise(delivery_fee=0))

        quote = await quote_service.accept_quote(db, client_principal, quote.id)

        assert quote.is_accepted is True
        await db.refresh(case)
        assert case.status == CaseStatus.quote_accepted

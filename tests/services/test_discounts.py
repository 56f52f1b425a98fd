import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.db.models import DiscountCode, DiscountUsage, DiscountType
from app.schemas.discount import DiscountCodeCreate, DiscountCodeUpdate
from app.services import discount_service, quote_service
from app.utils.dates import utcnow

pytestmark = pytest.mark.asyncio


@pytest.fixture
def make_code(db, admin_principal):
    async def _make(code="SAVE10", discount_type=DiscountType.percentage, discount_value=10, **fields):
        now = utcnow()
        data = {
            "code": code,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
            **fields,
        }
        return await discount_service.create_discount_code(db, admin_principal, DiscountCodeCreate(**data))

    return _make


async def _times_used(db, discount_code_id) -> int:
    result = await db.execute(select(DiscountCode.times_used).where(DiscountCode.id == discount_code_id))
    return result.scalar_one()


async def _usage_count(db, discount_code_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(DiscountUsage).where(DiscountUsage.discount_code_id == discount_code_id)
    )
    return result.scalar_one()


class TestValidateDiscountCode:
    async def test_valid_code_is_case_insensitive(self, db, make_code, client_profile):
        await make_code("SAVE10")

        code = await discount_service.validate_discount_code(db, " save10 ", client_profile.id, 370)

        assert code.code == "SAVE10"

    async def test_unknown_code(self, db, client_profile):
        with pytest.raises(NotFoundError) as exc_info:
            await discount_service.validate_discount_code(db, "NOPE", client_profile.id, 370)
        assert exc_info.value.code == "not_found"

    async def test_inactive_is_reported_before_expiry(self, db, make_code, client_profile):
        now = utcnow()
        await make_code(
            "OLDCODE",
            is_active=False,
            valid_from=now - timedelta(days=60),
            valid_until=now - timedelta(days=30),
        )

        with pytest.raises(InvalidStateError) as exc_info:
            await discount_service.validate_discount_code(db, "OLDCODE", client_profile.id, 370)
        assert exc_info.value.code == "inactive"

    async def test_not_yet_valid(self, db, make_code, client_profile):
        now = utcnow()
        await make_code("SOON", valid_from=now + timedelta(days=1), valid_until=now + timedelta(days=10))

        with pytest.raises(InvalidStateError) as exc_info:
            await discount_service.validate_discount_code(db, "SOON", client_profile.id, 370)
        assert exc_info.value.code == "not_yet_valid"

    async def test_expired(self, db, make_code, client_profile):
        now = utcnow()
        await make_code("GONE", valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))

        with pytest.raises(ExpiredError) as exc_info:
            await discount_service.validate_discount_code(db, "GONE", client_profile.id, 370)
        assert exc_info.value.code == "expired"

    async def test_minimum_order(self, db, make_code, client_profile):
        await make_code("BIGONLY", min_order_amount=500)

        with pytest.raises(ValidationError) as exc_info:
            await discount_service.validate_discount_code(db, "BIGONLY", client_profile.id, 370)
        assert exc_info.value.code == "min_order"

    async def test_total_usage_limit(self, db, make_code, client_profile):
        code = await make_code("ONCE", max_uses_total=1)
        code.times_used = 1
        await db.commit()

        with pytest.raises(InvalidStateError) as exc_info:
            await discount_service.validate_discount_code(db, "ONCE", client_profile.id, 370)
        assert exc_info.value.code == "usage_limit"

    async def test_per_client_limit(self, db, make_code, make_quote, client_principal, client_profile):
        await make_code("WELCOME", max_uses_per_client=1)
        _, quote = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, quote.id, "WELCOME")
        await quote_service.accept_quote(db, client_principal, quote.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await discount_service.validate_discount_code(db, "WELCOME", client_profile.id, 370)
        assert exc_info.value.code == "client_usage_limit"

    async def test_deleted_code_is_unknown(self, db, make_code, admin_principal, client_profile):
        code = await make_code("TEMP")
        await discount_service.delete_discount_code(db, admin_principal, code.id)

        with pytest.raises(NotFoundError):
            await discount_service.validate_discount_code(db, "TEMP", client_profile.id, 370)


class TestApplyDiscount:
    async def test_apply_reprices_without_touching_study_fee(self, db, make_code, make_quote, client_principal):
        discount_code = await make_code("SAVE10")
        _, quote = await make_quote()

        quote = await discount_service.apply_discount_code(db, client_principal, quote.id, "save10")

        assert quote.discount_code_id == discount_code.id
        assert quote.discount_amount == Decimal("37.00")
        assert quote.subtotal == Decimal("433.00")
        assert quote.vat_amount == Decimal("64.95")
        assert quote.total_amount == Decimal("497.95")
        assert quote.discount_reason == "Discount code: SAVE10"

    async def test_fixed_code_is_capped_at_discountable_amount(self, db, make_code, make_quote, client_principal):
        await make_code("HUGE", discount_type=DiscountType.fixed, discount_value=1000)
        _, quote = await make_quote()

        quote = await discount_service.apply_discount_code(db, client_principal, quote.id, "HUGE")

        assert quote.discount_amount == Decimal("370.00")
        assert quote.subtotal == Decimal("100.00")

    async def test_only_one_discount_per_quote(self, db, make_code, make_quote, client_principal):
        await make_code("SAVE10")
        await make_code("SAVE20", discount_value=20)
        _, quote = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, quote.id, "SAVE10")

        with pytest.raises(InvalidStateError):
            await discount_service.apply_discount_code(db, client_principal, quote.id, "SAVE20")

    async def test_remove_restores_totals(self, db, make_code, make_quote, client_principal):
        await make_code("SAVE10")
        _, quote = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, quote.id, "SAVE10")

        quote = await discount_service.remove_discount_code(db, client_principal, quote.id)

        assert quote.discount_code_id is None
        assert quote.discount_amount == Decimal("0.00")
        assert quote.total_amount == Decimal("540.50")

    async def test_preview_leaves_quote_unchanged(self, db, make_code, make_quote, client_principal):
        await make_code("SAVE10")
        _, quote = await make_quote()

        preview = await discount_service.preview_discount(db, client_principal, quote.id, "SAVE10")

        assert preview["discountable_amount"] == Decimal("370")
        assert preview["discount_amount"] == Decimal("37.00")
        assert preview["total_amount"] == Decimal("497.95")
        await db.refresh(quote)
        assert quote.discount_code_id is None
        assert quote.total_amount == Decimal("540.50")

    async def test_other_client_cannot_apply(self, db, make_code, make_quote, other_client_principal):
        await make_code("SAVE10")
        _, quote = await make_quote()

        with pytest.raises(AuthorizationError):
            await discount_service.apply_discount_code(db, other_client_principal, quote.id, "SAVE10")


class TestUsageRecording:
    async def test_acceptance_records_usage(self, db, make_code, make_quote, client_principal, admin_principal):
        discount_code = await make_code("SAVE10")
        _, quote = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, quote.id, "SAVE10")

        await quote_service.accept_quote(db, client_principal, quote.id)

        assert await _times_used(db, discount_code.id) == 1
        _, stats = await discount_service.get_discount_code(db, admin_principal, discount_code.id)
        assert stats["total_uses"] == 1
        assert stats["unique_clients"] == 1
        assert Decimal(str(stats["total_discount_given"])) == Decimal("37.00")
        assert Decimal(str(stats["total_order_value"])) == Decimal("370.00")

    async def test_total_cap_is_enforced_at_acceptance(self, db, make_code, make_quote, client_principal):
        discount_code = await make_code("LAST1", max_uses_total=1)
        discount_code_id = discount_code.id
        _, first = await make_quote()
        _, second = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, first.id, "LAST1")
        await discount_service.apply_discount_code(db, client_principal, second.id, "LAST1")

        await quote_service.accept_quote(db, client_principal, first.id)
        with pytest.raises(ConflictError) as exc_info:
            await quote_service.accept_quote(db, client_principal, second.id)

        assert exc_info.value.code == "usage_limit"
        assert await _times_used(db, discount_code_id) == 1
        assert await _usage_count(db, discount_code_id) == 1
        await db.refresh(second)
        assert second.is_accepted is False

    async def test_concurrent_acceptances_share_the_last_use(
        self, db, session_factory, make_code, make_quote, client_principal
    ):
        discount_code = await make_code("LAST1", max_uses_total=1)
        discount_code_id = discount_code.id
        _, first = await make_quote()
        _, second = await make_quote()
        await discount_service.apply_discount_code(db, client_principal, first.id, "LAST1")
        await discount_service.apply_discount_code(db, client_principal, second.id, "LAST1")

        async def accept(quote_id):
            async with session_factory() as session:
                return await quote_service.accept_quote(session, client_principal, quote_id)

        results = await asyncio.gather(accept(first.id), accept(second.id), return_exceptions=True)

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 1
        assert conflicts[0].code == "usage_limit"
        assert len([r for r in results if not isinstance(r, Exception)]) == 1
        assert await _times_used(db, discount_code_id) == 1
        assert await _usage_count(db, discount_code_id) == 1


class TestDiscountCodeAdmin:
    async def test_duplicate_code(self, db, make_code):
        await make_code("SAVE10")

        with pytest.raises(ConflictError) as exc_info:
            await make_code("save10")
        assert exc_info.value.code == "duplicate"

    async def test_concurrent_creates_keep_one_code(self, db, session_factory, admin_principal):
        now = utcnow()

        async def create(code):
            code_in = DiscountCodeCreate(
                code=code,
                discount_type=DiscountType.percentage,
                discount_value=10,
                valid_from=now - timedelta(days=1),
                valid_until=now + timedelta(days=30),
            )
            async with session_factory() as session:
                return await discount_service.create_discount_code(session, admin_principal, code_in)

        results = await asyncio.gather(create("DUP1"), create("dup1"), return_exceptions=True)

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 1
        assert conflicts[0].code == "duplicate"
        result = await db.execute(select(func.count()).select_from(DiscountCode))
        assert result.scalar_one() == 1

    async def test_deleted_code_can_be_created_again(self, db, make_code, admin_principal):
        old = await make_code("SAVE10")
        await discount_service.delete_discount_code(db, admin_principal, old.id)

        new = await make_code("SAVE10")

        assert new.id != old.id
        assert new.deleted_at is None

    async def test_code_format(self, db, make_code):
        with pytest.raises(ValidationError) as exc_info:
            await make_code("NO-DASHES")
        assert "code" in exc_info.value.errors

    async def test_percentage_above_100(self, db, make_code):
        with pytest.raises(ValidationError) as exc_info:
            await make_code("TOOMUCH", discount_value=150)
        assert "discount_value" in exc_info.value.errors

    async def test_clients_cannot_manage_codes(self, db, client_principal):
        now = utcnow()
        code_in = DiscountCodeCreate(
            code="MINE",
            discount_type=DiscountType.fixed,
            discount_value=10,
            valid_from=now,
            valid_until=now + timedelta(days=1),
        )

        with pytest.raises(AuthorizationError):
            await discount_service.create_discount_code(db, client_principal, code_in)

    async def test_cap_cannot_drop_below_times_used(self, db, make_code, admin_principal):
        code = await make_code("USED")
        code.times_used = 3
        await db.commit()

        with pytest.raises(ValidationError) as exc_info:
            await discount_service.update_discount_code(
                db, admin_principal, code.id, DiscountCodeUpdate(max_uses_total=2)
            )
        assert "max_uses_total" in exc_info.value.errors

    async def test_list_filters_inactive(self, db, make_code, admin_principal):
        await make_code("ACTIVE1")
        await make_code("PAUSED", is_active=False)

        codes, total = await discount_service.list_discount_codes(db, admin_principal, is_active=True)

        assert total == 1
        assert [c.code for c in codes] == ["ACTIVE1"]

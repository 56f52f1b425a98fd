from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import AuthorizationError
from app.db.models import CaseStatus, PaymentType
from app.services import case_workflow, dashboard_service, payment_service
from app.services.dashboard_service import growth_percent, month_bounds

pytestmark = pytest.mark.asyncio


class TestClientCaseStats:
    async def test_cases_are_grouped_by_status(
        self, db, make_case, client_principal, other_client_principal
    ):
        await make_case(CaseStatus.draft)
        await make_case(CaseStatus.submitted)
        await make_case(CaseStatus.study_completed, procedure_category="full_arch")
        cancelled = await make_case(CaseStatus.submitted)
        await case_workflow.change_status(db, client_principal, cancelled.id, CaseStatus.cancelled)
        await make_case(CaseStatus.submitted, principal=other_client_principal)

        stats = await case_workflow.get_case_stats(db, client_principal)

        assert stats["overview"] == {"total": 4, "pending": 1, "active": 1, "delivered": 0, "cancelled": 1}
        assert stats["status_breakdown"] == {"draft": 1, "submitted": 1, "study_completed": 1, "cancelled": 1}
        assert stats["procedure_breakdown"] == {"single_implant": 3, "full_arch": 1}
        assert len(stats["recent_cases"]) == 4
        assert all(c.client_profile_id == client_principal.profile_id for c in stats["recent_cases"])

    async def test_recent_cases_are_capped(self, db, make_case, client_principal):
        for _ in range(6):
            await make_case(CaseStatus.draft)

        stats = await case_workflow.get_case_stats(db, client_principal)

        assert stats["overview"]["total"] == 6
        assert len(stats["recent_cases"]) == 5

    async def test_staff_have_no_client_stats(self, db, designer_principal):
        with pytest.raises(AuthorizationError):
            await case_workflow.get_case_stats(db, designer_principal)


class TestDashboard:
    async def test_overview(
        self, db, make_case, in_production_case, study_payment_in, client_principal, admin_principal
    ):
        await in_production_case()
        draft = await make_case(CaseStatus.draft)
        await payment_service.upload_study_payment(db, client_principal, study_payment_in(draft.id))

        dashboard = await dashboard_service.get_dashboard(db, admin_principal)

        overview = dashboard["overview"]
        assert overview["total_cases"] == 2
        assert overview["today_cases"] == 2
        assert overview["month_cases"] == 2
        assert overview["total_revenue"] == Decimal("540.50")
        assert overview["month_revenue"] == Decimal("540.50")
        assert overview["revenue_growth"] == Decimal("0.00")
        assert overview["pending_payments"] == 1
        assert overview["verified_payments"] == 1
        assert overview["total_clients"] == 1
        assert overview["new_clients_this_month"] == 1
        assert overview["total_designers"] == 1
        assert overview["total_admins"] == 1
        assert overview["pending_quotes"] == 0
        assert overview["accepted_quotes_this_month"] == 1
        assert overview["total_quotes"] == 1
        assert dashboard["cases_by_status"] == {"in_production": 1, "pending_study_payment": 1}
        assert len(dashboard["recent_cases"]) == 2
        assert {p["payment_type"] for p in dashboard["recent_payments"]} == {
            PaymentType.study_fee, PaymentType.production_fee,
        }
        assert all(p["client"] == "Dr. Test" for p in dashboard["recent_payments"])

    async def test_open_quotes_are_counted(self, db, make_quote, admin_principal):
        await make_quote()

        dashboard = await dashboard_service.get_dashboard(db, admin_principal)

        assert dashboard["overview"]["pending_quotes"] == 1
        assert dashboard["overview"]["accepted_quotes_this_month"] == 0

    async def test_admin_only(self, db, designer_principal, client_principal):
        with pytest.raises(AuthorizationError):
            await dashboard_service.get_dashboard(db, designer_principal)
        with pytest.raises(AuthorizationError):
            await dashboard_service.get_system_stats(db, client_principal)


class TestSystemStats:
    async def test_activity_and_revenue(
        self, db, in_production_case, designer_principal, admin_principal
    ):
        await in_production_case()

        stats = await dashboard_service.get_system_stats(db, admin_principal, period_days=7)

        assert stats["period_days"] == 7
        assert stats["average_quote_value"] == Decimal("540.50")
        assert [(d["id"], d["studies_completed"], d["quotes_created"]) for d in stats["top_designers"]] == [
            (designer_principal.profile_id, 1, 0),
            (admin_principal.profile_id, 0, 1),
        ]
        assert stats["clients_by_type"] == {"doctor": 1}
        assert stats["cases_by_status"] == {"in_production": 1}
        assert stats["revenue_by_type"] == [
            {"payment_type": PaymentType.production_fee, "count": 1, "total": Decimal("540.50")}
        ]
        assert stats["active_discount_codes"] == 0

    async def test_empty_platform(self, db, admin_principal):
        stats = await dashboard_service.get_system_stats(db, admin_principal)

        assert stats["period_days"] == 30
        assert stats["average_quote_value"] is None
        assert stats["cases_by_status"] == {}
        assert stats["revenue_by_type"] == []


class TestHelpers:
    def test_month_bounds_cross_the_year(self):
        month_start, last_month_start = month_bounds(datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc))

        assert month_start == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert last_month_start == datetime(2025, 12, 1, tzinfo=timezone.utc)

    def test_growth_percent(self):
        assert growth_percent(Decimal("150"), Decimal("100")) == Decimal("50.00")
        assert growth_percent(Decimal("80"), Decimal("120")) == Decimal("-33.33")
        assert growth_percent(Decimal("80"), Decimal("0")) == Decimal("0.00")

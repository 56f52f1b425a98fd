"""
Admin dashboard and system statistics.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.policy import authorize
from app.crud import case as case_crud
from app.crud import discount as discount_crud
from app.crud import payment as payment_crud
from app.crud import profile as profile_crud
from app.crud import quote as quote_crud
from app.db.models import CaseStatus, PaymentStatus
from app.schemas.auth import Principal
from app.services.pricing import round2
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """
    Start of the current month and start of the previous one.
    """
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month_start = (month_start - timedelta(days=1)).replace(day=1)
    return month_start, last_month_start


def growth_percent(current: Decimal, previous: Decimal) -> Decimal:
    if previous <= 0:
        return Decimal("0.00")
    return round2((current - previous) / previous * 100)


async def get_dashboard(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """
    Platform overview: case volume, money collected, users, open quotes and
    the latest cases and payments.
    """
    authorize(principal, "admin.dashboard")

    now = utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start, last_month_start = month_bounds(now)

    month_revenue = round2(await payment_crud.get_collected_total(db, verified_since=month_start))
    last_month_revenue = round2(
        await payment_crud.get_collected_total(db, verified_since=last_month_start, verified_before=month_start)
    )
    by_status = await case_crud.count_by_status(db)

    overview = {
        "total_cases": sum(by_status.values()),
        "today_cases": await case_crud.count_cases(db, created_since=today_start),
        "month_cases": await case_crud.count_cases(db, created_since=month_start),
        "total_revenue": round2(await payment_crud.get_collected_total(db)),
        "month_revenue": month_revenue,
        "revenue_growth": growth_percent(month_revenue, last_month_revenue),
        "pending_payments": await payment_crud.count_by_status(db, PaymentStatus.pending),
        "verified_payments": await payment_crud.count_by_status(db, PaymentStatus.verified),
        "total_clients": await profile_crud.count_clients(db),
        "new_clients_this_month": await profile_crud.count_clients(db, created_since=month_start),
        "total_designers": await profile_crud.count_designers(db, is_admin=False),
        "total_admins": await profile_crud.count_designers(db, is_admin=True),
        "pending_quotes": await quote_crud.count_open_quotes(db),
        "accepted_quotes_this_month": await quote_crud.count_accepted_since(db, month_start),
        "total_quotes": await quote_crud.count_quotes(db),
    }

    recent_cases = [
        {
            "id": case.id,
            "case_number": case.case_number,
            "client": case.client_profile.name if case.client_profile else None,
            "client_type": case.client_profile.client_type if case.client_profile else None,
            "status": case.status,
            "created_at": case.created_at,
        }
        for case in await case_crud.get_recent_cases(db, limit=10)
    ]
    recent_payments = [
        {
            "id": payment.id,
            "payment_number": payment.payment_number,
            "payment_type": payment.payment_type,
            "amount": payment.amount,
            "status": payment.status,
            "client": payment.case.client_profile.name if payment.case and payment.case.client_profile else None,
            "created_at": payment.created_at,
        }
        for payment in await payment_crud.get_recent_payments(db, limit=10)
    ]

    logger.info(f"Dashboard accessed by admin {principal.profile_id}")
    return {
        "currency": settings.CURRENCY,
        "overview": overview,
        "cases_by_status": {status.value: count for status, count in by_status.items()},
        "recent_cases": recent_cases,
        "recent_payments": recent_payments,
    }


async def get_system_stats(db: AsyncSession, principal: Principal, period_days: int = 30) -> Dict[str, Any]:
    """
    Detailed statistics over the last ``period_days`` days, plus designer
    activity and client mix over all time.
    """
    authorize(principal, "admin.dashboard")

    since = utcnow() - timedelta(days=period_days)
    studies = await case_crud.count_transitions_by_actor(db, CaseStatus.study_completed)
    quotes = await quote_crud.count_by_creator(db)

    designers = [
        {
            "id": designer.id,
            "name": designer.name,
            "studies_completed": studies.get(designer.id, 0),
            "quotes_created": quotes.get(designer.id, 0),
        }
        for designer in await profile_crud.get_designers(db)
    ]
    designers.sort(key=lambda d: (-d["studies_completed"], -d["quotes_created"], d["name"]))

    revenue_rows = await payment_crud.get_totals_by_type(
        db, (PaymentStatus.verified, PaymentStatus.refunded), verified_since=since
    )
    average_quote = await quote_crud.get_average_total(db)

    logger.info(f"System stats for {period_days} days accessed by admin {principal.profile_id}")
    return {
        "period_days": period_days,
        "currency": settings.CURRENCY,
        "average_quote_value": round2(average_quote) if average_quote is not None else None,
        "top_designers": designers[:10],
        "clients_by_type": {
            client_type.value: count for client_type, count in (await profile_crud.count_clients_by_type(db)).items()
        },
        "cases_by_status": {
            status.value: count for status, count in (await case_crud.count_by_status(db, created_since=since)).items()
        },
        "revenue_by_type": [
            {"payment_type": payment_type, "count": count, "total": round2(total)}
            for payment_type, count, total in revenue_rows
        ],
        "active_discount_codes": await discount_crud.count_active_codes(db),
    }

from typing import Dict, List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel
from app.db.models.case import CaseStatus
from app.db.models.client import ClientType
from app.db.models.payment import PaymentStatus, PaymentType
from app.schemas.base import Money
from app.schemas.payment import RevenueBreakdown

class DashboardOverview(BaseModel):
    total_cases: int
    today_cases: int
    month_cases: int
    total_revenue: Money
    month_revenue: Money
    revenue_growth: Money
    pending_payments: int
    verified_payments: int
    total_clients: int
    new_clients_this_month: int
    total_designers: int
    total_admins: int
    pending_quotes: int
    accepted_quotes_this_month: int
    total_quotes: int

class RecentCase(BaseModel):
    id: UUID
    case_number: str
    client: Optional[str] = None
    client_type: Optional[ClientType] = None
    status: CaseStatus
    created_at: datetime

class RecentPayment(BaseModel):
    id: UUID
    payment_number: str
    payment_type: PaymentType
    amount: Money
    status: PaymentStatus
    client: Optional[str] = None
    created_at: datetime

class Dashboard(BaseModel):
    currency: str
    overview: DashboardOverview
    cases_by_status: Dict[str, int]
    recent_cases: List[RecentCase]
    recent_payments: List[RecentPayment]

class DesignerActivity(BaseModel):
    id: UUID
    name: str
    studies_completed: int
    quotes_created: int

class SystemStats(BaseModel):
    period_days: int
    currency: str
    average_quote_value: Optional[Money] = None
    top_designers: List[DesignerActivity]
    clients_by_type: Dict[str, int]
    cases_by_status: Dict[str, int]
    revenue_by_type: List[RevenueBreakdown]
    active_discount_codes: int

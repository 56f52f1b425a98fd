from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from app.db.models.payment import PaymentMethod, PaymentStatus, PaymentType
from app.schemas.base import Money, Pagination

class PaymentProofBase(BaseModel):
    case_id: UUID
    amount: Money = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.bank_transfer
    proof_url: str = Field(..., min_length=1)
    transaction_id: Optional[str] = None
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None

class StudyPaymentCreate(PaymentProofBase):
    pass

class ProductionPaymentCreate(PaymentProofBase):
    quote_id: UUID

class PaymentVerify(BaseModel):
    notes: Optional[str] = None

class PaymentReject(BaseModel):
    rejection_reason: str = Field(..., min_length=1)

class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class RefundApprove(BaseModel):
    refund_amount: Money
    notes: Optional[str] = None

class RefundReject(BaseModel):
    reason: str = Field(..., min_length=1)

class Payment(BaseModel):
    id: UUID
    payment_number: str
    case_id: UUID
    quote_id: Optional[UUID] = None
    client_profile_id: UUID
    payment_type: PaymentType
    amount: Money
    currency: str
    payment_method: PaymentMethod
    status: PaymentStatus
    proof_url: str
    proof_uploaded_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None
    verified_by_id: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    refund_requested_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    is_refunded: bool
    refunded_amount: Optional[Money] = None
    refunded_at: Optional[datetime] = None
    refund_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class PaymentList(BaseModel):
    payments: List[Payment]
    pagination: Pagination

class RevenueBreakdown(BaseModel):
    payment_type: PaymentType
    count: int
    total: Money

class RevenueReport(BaseModel):
    currency: str
    verified_total: Money
    refunded_total: Money
    net_total: Money
    pending_count: int
    by_type: List[RevenueBreakdown]

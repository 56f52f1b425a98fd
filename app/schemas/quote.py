from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from app.db.models.discount import DiscountType
from app.schemas.base import Money

class QuoteCreate(BaseModel):
    case_id: UUID
    study_fee: Optional[Money] = Field(None, ge=0)
    design_fee: Money = Field(0, ge=0)
    production_fee: Money = Field(0, ge=0)
    delivery_fee: Money = Field(0, ge=0)
    discount_amount: Money = Field(0, ge=0)
    discount_reason: Optional[str] = None
    vat_rate: Optional[Money] = Field(None, ge=0, le=100)
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None

class QuoteRevise(BaseModel):
    study_fee: Optional[Money] = Field(None, ge=0)
    design_fee: Optional[Money] = Field(None, ge=0)
    production_fee: Optional[Money] = Field(None, ge=0)
    delivery_fee: Optional[Money] = Field(None, ge=0)
    discount_amount: Optional[Money] = Field(None, ge=0)
    discount_reason: Optional[str] = None
    vat_rate: Optional[Money] = Field(None, ge=0, le=100)
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None

class QuoteReject(BaseModel):
    rejection_reason: str
    request_revision: bool = True

class DiscountCodeInfo(BaseModel):
    code: str
    discount_type: DiscountType
    discount_value: Money

    class Config:
        from_attributes = True

class Quote(BaseModel):
    id: UUID
    quote_number: str
    case_id: UUID
    study_fee: Money
    design_fee: Money
    production_fee: Money
    delivery_fee: Money
    subtotal: Money
    discount_code_id: Optional[UUID] = None
    discount_amount: Money
    discount_reason: Optional[str] = None
    vat_rate: Money
    vat_amount: Money
    total_amount: Money
    notes: Optional[str] = None
    is_sent: bool
    sent_at: Optional[datetime] = None
    is_accepted: bool
    accepted_at: Optional[datetime] = None
    is_rejected: bool
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    valid_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class QuoteResponse(Quote):
    discount_code: Optional[DiscountCodeInfo] = None

class StaffQuoteResponse(QuoteResponse):
    internal_notes: Optional[str] = None
    created_by_id: Optional[UUID] = None

class QuoteList(BaseModel):
    quotes: List[QuoteResponse]

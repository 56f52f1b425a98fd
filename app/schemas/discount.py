from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field, validator
from app.db.models.discount import DiscountType
from app.schemas.base import Money, Pagination

class DiscountCodeBase(BaseModel):
    discount_type: DiscountType
    discount_value: Money = Field(..., gt=0)
    max_discount_amount: Optional[Money] = Field(None, gt=0)
    min_order_amount: Money = Field(0, ge=0)
    max_uses_total: Optional[int] = Field(None, ge=1)
    max_uses_per_client: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True
    description: Optional[str] = None
    internal_notes: Optional[str] = None

class DiscountCodeCreate(DiscountCodeBase):
    code: str

    @validator('code', pre=True)
    def normalize_code(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

class DiscountCodeUpdate(BaseModel):
    discount_value: Optional[Money] = Field(None, gt=0)
    max_discount_amount: Optional[Money] = Field(None, gt=0)
    min_order_amount: Optional[Money] = Field(None, ge=0)
    max_uses_total: Optional[int] = Field(None, ge=1)
    max_uses_per_client: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None
    internal_notes: Optional[str] = None

class DiscountCode(DiscountCodeBase):
    id: UUID
    code: str
    times_used: int
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class DiscountCodeStats(BaseModel):
    total_uses: int
    unique_clients: int
    total_discount_given: Money
    total_order_value: Money

class DiscountCodeDetail(DiscountCode):
    stats: DiscountCodeStats

class DiscountCodeList(BaseModel):
    codes: List[DiscountCode]
    pagination: Pagination

class DiscountApply(BaseModel):
    quote_id: UUID
    code: str = Field(..., min_length=1)

class DiscountRemove(BaseModel):
    quote_id: UUID

class DiscountPreview(BaseModel):
    valid: bool = True
    code: str
    discount_type: DiscountType
    discount_value: Money
    discountable_amount: Money
    discount_amount: Money
    subtotal: Money
    vat_amount: Money
    total_amount: Money

from sqlalchemy import Column, Text, Integer, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, Uuid, func
from enum import Enum
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"

class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(Text, nullable=False, index=True)
    discount_type = Column(SQLEnum(DiscountType, name="discount_type"), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    min_order_amount = Column(Numeric(12, 2), nullable=False, default=0)
    max_uses_total = Column(Integer, nullable=True)
    max_uses_per_client = Column(Integer, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    times_used = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("designer_profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

# One live row per code, ignoring case
Index(
    "uq_discount_codes_code_live",
    func.upper(DiscountCode.code),
    unique=True,
    postgresql_where=DiscountCode.deleted_at.is_(None),
    sqlite_where=DiscountCode.deleted_at.is_(None),
)

class DiscountUsage(Base):
    """One application of a code to one accepted quote. Never updated."""

    __tablename__ = "discount_usages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    discount_code_id = Column(Uuid(as_uuid=True), ForeignKey("discount_codes.id"), nullable=False, index=True)
    client_profile_id = Column(Uuid(as_uuid=True), ForeignKey("client_profiles.id"), nullable=False, index=True)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("cases.id"), nullable=False)
    quote_id = Column(Uuid(as_uuid=True), ForeignKey("case_quotes.id"), nullable=False, unique=True)
    original_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    final_amount = Column(Numeric(12, 2), nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

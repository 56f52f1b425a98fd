from sqlalchemy import Column, Text, Boolean, DateTime, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class CaseQuote(Base):
    __tablename__ = "case_quotes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_number = Column(Text, nullable=False, unique=True)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("cases.id"), nullable=False, index=True)

    # Fee breakdown
    study_fee = Column(Numeric(12, 2), nullable=False, default=0)
    design_fee = Column(Numeric(12, 2), nullable=False, default=0)
    production_fee = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(12, 2), nullable=False, default=0)

    # Totals
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_code_id = Column(Uuid(as_uuid=True), ForeignKey("discount_codes.id"), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_reason = Column(Text, nullable=True)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=15)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    created_by_id = Column(Uuid(as_uuid=True), ForeignKey("designer_profiles.id"), nullable=True)

    # Lifecycle
    is_sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    is_accepted = Column(Boolean, nullable=False, default=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    is_rejected = Column(Boolean, nullable=False, default=False)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    case = relationship("Case", lazy="selectin")
    discount_code = relationship("DiscountCode", lazy="selectin")

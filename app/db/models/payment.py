from sqlalchemy import Column, Text, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship
from enum import Enum
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class PaymentType(str, Enum):
    study_fee = "study_fee"
    production_fee = "production_fee"

class PaymentStatus(str, Enum):
    pending = "pending"
    verified = "verified"
    failed = "failed"
    refunded = "refunded"

class PaymentMethod(str, Enum):
    bank_transfer = "bank_transfer"
    cash = "cash"
    hyperpay = "hyperpay"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_number = Column(Text, nullable=False, unique=True)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("cases.id"), nullable=False, index=True)
    quote_id = Column(Uuid(as_uuid=True), ForeignKey("case_quotes.id"), nullable=True)
    client_profile_id = Column(Uuid(as_uuid=True), ForeignKey("client_profiles.id"), nullable=False, index=True)
    payment_type = Column(SQLEnum(PaymentType, name="payment_type"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(Text, nullable=False, default="SAR")
    payment_method = Column(SQLEnum(PaymentMethod, name="payment_method"), nullable=False)
    status = Column(SQLEnum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.pending, index=True)

    # Proof
    proof_url = Column(Text, nullable=False)
    proof_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    transaction_id = Column(Text, nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Verification
    verified_by_id = Column(Uuid(as_uuid=True), ForeignKey("designer_profiles.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Refund
    refund_requested_at = Column(DateTime(timezone=True), nullable=True)
    refund_reason = Column(Text, nullable=True)
    is_refunded = Column(Boolean, nullable=False, default=False)
    refunded_amount = Column(Numeric(12, 2), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    case = relationship("Case", lazy="selectin")

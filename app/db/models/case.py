from sqlalchemy import Column, Text, Integer, Boolean, DateTime, Enum as SQLEnum, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
from enum import Enum
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class CaseStatus(str, Enum):
    draft = "draft"
    submitted = "submitted"
    pending_study_payment = "pending_study_payment"
    study_in_progress = "study_in_progress"
    study_completed = "study_completed"
    quote_pending = "quote_pending"
    quote_sent = "quote_sent"
    quote_accepted = "quote_accepted"
    quote_rejected = "quote_rejected"
    pending_production_payment = "pending_production_payment"
    in_production = "in_production"
    pending_response = "pending_response"
    production_completed = "production_completed"
    ready_for_pickup = "ready_for_pickup"
    out_for_delivery = "out_for_delivery"
    delivered = "delivered"
    completed = "completed"
    cancelled = "cancelled"
    refund_requested = "refund_requested"
    refunded = "refunded"

    @classmethod
    def _missing_(cls, value):
        # Older clients send the long "..._verification" spellings
        if isinstance(value, str) and value.endswith("_verification"):
            return cls._value2member_map_.get(value[: -len("_verification")])
        return None

class ActorKind(str, Enum):
    client = "client"
    designer = "designer"
    admin = "admin"

class ProcedureCategory(str, Enum):
    single_implant = "single_implant"
    multiple_implant = "multiple_implant"
    full_arch = "full_arch"
    gbr = "gbr"
    other = "other"

class GuideType(str, Enum):
    tooth_support = "tooth_support"
    tissue_support = "tissue_support"
    bone_support = "bone_support"
    stackable = "stackable"
    hybrid = "hybrid"
    other = "other"

class RequiredService(str, Enum):
    study_only = "study_only"
    full_solution = "full_solution"

class DeliveryMethod(str, Enum):
    delivery = "delivery"
    pickup = "pickup"

class Case(Base):
    __tablename__ = "cases"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    case_number = Column(Text, nullable=False, unique=True)
    client_profile_id = Column(Uuid(as_uuid=True), ForeignKey("client_profiles.id"), nullable=False, index=True)
    status = Column(SQLEnum(CaseStatus, name="case_status"), nullable=False, default=CaseStatus.draft, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)

    # Clinical classification
    patient_ref = Column(Text, nullable=True)
    procedure_category = Column(Text, nullable=True)
    guide_type = Column(Text, nullable=True)
    required_service = Column(Text, nullable=True)
    implant_system = Column(Text, nullable=True)
    implant_system_other = Column(Text, nullable=True)
    teeth_numbers = Column(JSON, nullable=True)
    clinical_notes = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)

    # Delivery
    delivery_method = Column(Text, nullable=True)
    delivery_address_id = Column(Integer, nullable=True)
    pickup_branch_id = Column(Integer, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    client_profile = relationship("ClientProfile", back_populates="cases", lazy="selectin")

class CaseStatusHistory(Base):
    """Append-only log of case transitions."""

    __tablename__ = "case_status_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("cases.id"), nullable=False, index=True)
    from_status = Column(SQLEnum(CaseStatus, name="case_status"), nullable=True)
    to_status = Column(SQLEnum(CaseStatus, name="case_status"), nullable=False)
    actor_kind = Column(SQLEnum(ActorKind, name="actor_kind"), nullable=False)
    actor_id = Column(Uuid(as_uuid=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

from typing import Dict, List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field, validator
from app.db.models.case import (
    ActorKind,
    CaseStatus,
    DeliveryMethod,
    GuideType,
    ProcedureCategory,
    RequiredService,
)
from app.schemas.base import Pagination

def _parse_status(v):
    if isinstance(v, CaseStatus):
        return v

    if isinstance(v, str):
        try:
            return CaseStatus(v.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid status value: {v}. Valid values are: {[e.value for e in CaseStatus]}")

    raise ValueError(f"Status must be a string or CaseStatus enum, got {type(v)}")

class CaseBase(BaseModel):
    patient_ref: Optional[str] = None
    procedure_category: Optional[ProcedureCategory] = None
    guide_type: Optional[GuideType] = None
    required_service: Optional[RequiredService] = None
    implant_system: Optional[str] = None
    implant_system_other: Optional[str] = None
    teeth_numbers: Optional[List[int]] = None
    clinical_notes: Optional[str] = None
    special_instructions: Optional[str] = None
    delivery_method: Optional[DeliveryMethod] = None
    delivery_address_id: Optional[int] = None
    pickup_branch_id: Optional[int] = None

class CaseCreate(CaseBase):
    is_draft: bool = True

class CaseUpdate(CaseBase):
    pass

class ClientInfo(BaseModel):
    id: UUID
    name: str
    client_type: str

    class Config:
        from_attributes = True

class Case(CaseBase):
    id: UUID
    case_number: str
    client_profile_id: UUID
    status: CaseStatus
    is_draft: bool
    submitted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class CaseResponse(Case):
    client_profile: Optional[ClientInfo] = None

class CaseList(BaseModel):
    cases: List[CaseResponse]
    pagination: Pagination

class StatusChange(BaseModel):
    status: CaseStatus
    notes: Optional[str] = None

    @validator('status', pre=True)
    def validate_status(cls, v):
        return _parse_status(v)

class StatusOverride(BaseModel):
    status: CaseStatus
    reason: str = Field(..., min_length=1)

    @validator('status', pre=True)
    def validate_status(cls, v):
        return _parse_status(v)

class AllowedStatuses(BaseModel):
    current_status: CaseStatus
    allowed_statuses: List[CaseStatus]

class Actor(BaseModel):
    kind: ActorKind
    id: Optional[UUID] = None

class CaseStatusHistory(BaseModel):
    id: UUID
    case_id: UUID
    from_status: Optional[CaseStatus] = None
    to_status: CaseStatus
    actor: Actor
    notes: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "CaseStatusHistory":
        return cls(
            id=row.id,
            case_id=row.case_id,
            from_status=row.from_status,
            to_status=row.to_status,
            actor=Actor(kind=row.actor_kind, id=row.actor_id),
            notes=row.notes,
            created_at=row.created_at,
        )

class CaseStatsOverview(BaseModel):
    total: int
    pending: int
    active: int
    delivered: int
    cancelled: int

class CaseStats(BaseModel):
    overview: CaseStatsOverview
    status_breakdown: Dict[str, int]
    procedure_breakdown: Dict[str, int]
    recent_cases: List[Case]

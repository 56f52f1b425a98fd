from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from app.db.models.case import ActorKind

class CommentCreate(BaseModel):
    comment: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    is_internal: bool = False

class Comment(BaseModel):
    id: UUID
    case_id: UUID
    author_kind: ActorKind
    author_name: Optional[str] = None
    client_profile_id: Optional[UUID] = None
    designer_profile_id: Optional[UUID] = None
    comment: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    is_internal: bool
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class CommentList(BaseModel):
    comments: List[Comment]
    total: int

class MarkedRead(BaseModel):
    updated: int

class CaseAssign(BaseModel):
    designer_profile_id: UUID
    notes: Optional[str] = None

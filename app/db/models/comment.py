from sqlalchemy import Column, Text, Integer, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from app.utils.dates import utcnow
from app.core.database import Base
from app.db.models.case import ActorKind

class CaseComment(Base):
    """
    A message on a case thread, optionally carrying a file link.

    Internal comments are staff notes and never reach the client.
    """

    __tablename__ = "case_comments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("cases.id"), nullable=False, index=True)
    author_kind = Column(SQLEnum(ActorKind, name="actor_kind"), nullable=False)
    client_profile_id = Column(Uuid(as_uuid=True), ForeignKey("client_profiles.id"), nullable=True)
    designer_profile_id = Column(Uuid(as_uuid=True), ForeignKey("designer_profiles.id"), nullable=True)

    comment = Column(Text, nullable=True)
    file_url = Column(Text, nullable=True)
    file_name = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)

    is_internal = Column(Boolean, nullable=False, default=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    client_profile = relationship("ClientProfile", lazy="selectin")
    designer_profile = relationship("DesignerProfile", lazy="selectin")

    @property
    def author_name(self):
        author = self.client_profile if self.author_kind == ActorKind.client else self.designer_profile
        return author.name if author is not None else None

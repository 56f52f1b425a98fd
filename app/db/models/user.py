from sqlalchemy import Column, Boolean, Text, DateTime, Uuid
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class DesignerProfile(Base):
    """Staff profile. Designers with ``is_admin`` run the admin operations."""

    __tablename__ = "designer_profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    preferred_language = Column(Text, nullable=False, default="en")
    created_at = Column(DateTime(timezone=True), default=utcnow)

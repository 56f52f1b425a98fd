from sqlalchemy import Column, Text, DateTime, Enum as SQLEnum, Uuid
from sqlalchemy.orm import relationship
from enum import Enum
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class ClientType(str, Enum):
    doctor = "doctor"
    lab = "lab"

class ClientProfile(Base):
    __tablename__ = "client_profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    client_type = Column(SQLEnum(ClientType, name="client_type"), nullable=False, default=ClientType.doctor)
    preferred_language = Column(Text, nullable=False, default="en")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    cases = relationship("Case", back_populates="client_profile")

from sqlalchemy import Column, Text, Boolean, DateTime, JSON, Uuid
import uuid
from app.utils.dates import utcnow
from app.core.database import Base

class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    channel = Column(Text, nullable=False, default="web")
    purpose = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    action_url = Column(Text, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    language = Column(Text, nullable=False, default="en")
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

from app.core.database import Base
from app.db.models.user import DesignerProfile
from app.db.models.client import ClientProfile
from app.db.models.case import Case, CaseStatusHistory
from app.db.models.discount import DiscountCode, DiscountUsage
from app.db.models.quote import CaseQuote
from app.db.models.payment import Payment
from app.db.models.notification import NotificationLog
from app.db.models.comment import CaseComment

# All models are imported here for SQLAlchemy to discover them

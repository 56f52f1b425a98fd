from app.db.models.user import DesignerProfile
from app.db.models.client import ClientProfile, ClientType
from app.db.models.case import (
    Case, CaseStatus, CaseStatusHistory, ActorKind,
    ProcedureCategory, GuideType, RequiredService, DeliveryMethod,
)
from app.db.models.discount import DiscountCode, DiscountUsage, DiscountType
from app.db.models.quote import CaseQuote
from app.db.models.payment import Payment, PaymentType, PaymentStatus, PaymentMethod
from app.db.models.notification import NotificationLog
from app.db.models.comment import CaseComment

# Export all models and enums
__all__ = [
    'DesignerProfile',
    'ClientProfile', 'ClientType',
    'Case', 'CaseStatus', 'CaseStatusHistory', 'ActorKind',
    'ProcedureCategory', 'GuideType', 'RequiredService', 'DeliveryMethod',
    'DiscountCode', 'DiscountUsage', 'DiscountType',
    'CaseQuote',
    'Payment', 'PaymentType', 'PaymentStatus', 'PaymentMethod',
    'NotificationLog',
    'CaseComment',
]

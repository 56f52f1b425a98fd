from app.schemas.auth import Principal, Role, Token, TokenPayload
from app.schemas.base import Message, Money, Pagination
from app.schemas.case import (
    AllowedStatuses, Case, CaseCreate, CaseList, CaseResponse, CaseStats,
    CaseStatusHistory, CaseUpdate, StatusChange, StatusOverride
)
from app.schemas.comment import CaseAssign, Comment, CommentCreate, CommentList, MarkedRead
from app.schemas.dashboard import Dashboard, SystemStats
from app.schemas.quote import Quote, QuoteCreate, QuoteList, QuoteReject, QuoteResponse, QuoteRevise
from app.schemas.payment import (
    Payment, PaymentList, PaymentReject, PaymentVerify, ProductionPaymentCreate,
    RefundApprove, RefundReject, RefundRequest, RevenueReport, StudyPaymentCreate
)
from app.schemas.discount import (
    DiscountApply, DiscountCode, DiscountCodeCreate, DiscountCodeDetail,
    DiscountCodeList, DiscountCodeUpdate, DiscountPreview, DiscountRemove
)
from app.schemas.notification import Notification, NotificationList, UnreadCount

# Export all schemas
__all__ = [
    'Principal', 'Role', 'Token', 'TokenPayload',
    'Message', 'Money', 'Pagination',
    'AllowedStatuses', 'Case', 'CaseCreate', 'CaseList', 'CaseResponse', 'CaseStats',
    'CaseStatusHistory', 'CaseUpdate', 'StatusChange', 'StatusOverride',
    'CaseAssign', 'Comment', 'CommentCreate', 'CommentList', 'MarkedRead',
    'Dashboard', 'SystemStats',
    'Quote', 'QuoteCreate', 'QuoteList', 'QuoteReject', 'QuoteResponse', 'QuoteRevise',
    'Payment', 'PaymentList', 'PaymentReject', 'PaymentVerify', 'ProductionPaymentCreate',
    'RefundApprove', 'RefundReject', 'RefundRequest', 'RevenueReport', 'StudyPaymentCreate',
    'DiscountApply', 'DiscountCode', 'DiscountCodeCreate', 'DiscountCodeDetail',
    'DiscountCodeList', 'DiscountCodeUpdate', 'DiscountPreview', 'DiscountRemove',
    'Notification', 'NotificationList', 'UnreadCount',
]

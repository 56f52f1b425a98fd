"""
Authorization policy.

Every operation names an action; the table below says which roles may run it
and whether a client must own the resource. ``authorize`` is called by the
service layer before any read or write happens.
"""

import logging
from typing import Dict, Optional
from uuid import UUID

from app.core.exceptions import AuthorizationError
from app.schemas.auth import Principal, Role

logger = logging.getLogger(__name__)

# Grants
ANY = "any"
OWNER = "owner"

_CLIENT_OWNER_STAFF = {Role.client: OWNER, Role.designer: ANY, Role.admin: ANY}
_CLIENT_OWNER = {Role.client: OWNER}
_CLIENT_OWNER_ADMIN = {Role.client: OWNER, Role.admin: ANY}
_ADMIN = {Role.admin: ANY}

POLICY: Dict[str, Dict[Role, str]] = {
    # Cases
    "case.create": {Role.client: ANY},
    "case.read": _CLIENT_OWNER_STAFF,
    "case.list": {Role.client: ANY, Role.designer: ANY, Role.admin: ANY},
    "case.update": _CLIENT_OWNER,
    "case.delete": _CLIENT_OWNER_ADMIN,
    "case.submit": _CLIENT_OWNER,
    "case.change_status": _CLIENT_OWNER_STAFF,
    "case.override_status": _ADMIN,
    "case.history": _CLIENT_OWNER_STAFF,
    "case.assign": _ADMIN,
    "case.stats": {Role.client: ANY},
    # Comments
    "comment.create": _CLIENT_OWNER_STAFF,
    "comment.read": _CLIENT_OWNER_STAFF,
    "comment.internal": {Role.designer: ANY, Role.admin: ANY},
    # Quotes
    "quote.create": _ADMIN,
    "quote.revise": _ADMIN,
    "quote.read": _CLIENT_OWNER_STAFF,
    "quote.accept": _CLIENT_OWNER,
    "quote.reject": _CLIENT_OWNER,
    # Discounts
    "discount.validate": _CLIENT_OWNER_ADMIN,
    "discount.apply": _CLIENT_OWNER_ADMIN,
    "discount.remove": _CLIENT_OWNER_ADMIN,
    "discount_code.manage": _ADMIN,
    # Payments
    "payment.upload": _CLIENT_OWNER,
    "payment.read": _CLIENT_OWNER_ADMIN,
    "payment.list": {Role.client: ANY, Role.admin: ANY},
    "payment.verify": _ADMIN,
    "payment.reject": _ADMIN,
    "payment.report": _ADMIN,
    "refund.request": _CLIENT_OWNER,
    "refund.approve": _ADMIN,
    "refund.reject": _ADMIN,
    # Reporting
    "admin.dashboard": _ADMIN,
}


def authorize(principal: Principal, action: str, owner_profile_id: Optional[UUID] = None) -> None:
    """
    Raise AuthorizationError unless ``principal`` may perform ``action``.

    ``owner_profile_id`` is the client profile owning the resource; it is only
    consulted for grants that require ownership.
    """
    grants = POLICY.get(action)
    if grants is None:
        raise KeyError(f"Unknown action: {action}")

    grant = grants.get(principal.role)
    if grant == ANY:
        return
    if grant == OWNER and owner_profile_id is not None and owner_profile_id == principal.profile_id:
        return

    logger.warning(
        f"Denied {action} for user {principal.user_id} (role={principal.role.value})"
    )
    if grant == OWNER:
        raise AuthorizationError("Access denied")
    raise AuthorizationError(f"Role {principal.role.value} cannot perform {action}")

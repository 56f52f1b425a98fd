from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import jwt

from app.core.config import settings


def create_access_token(
    user_id: str,
    role: str,
    profile_id: UUID,
    is_admin: bool = False,
    expires_in: Optional[int] = None,
) -> str:
    """
    Issue a signed bearer token carrying the claims the API authorizes on.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        seconds=expires_in or settings.ACCESS_TOKEN_EXPIRE_SECONDS
    )
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "profile_id": str(profile_id),
        "is_admin": is_admin,
        "exp": expire,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])

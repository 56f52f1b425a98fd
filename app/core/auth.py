from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError as PydanticValidationError
import logging
from app.core.security import decode_access_token
from app.schemas.auth import Principal, TokenPayload

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

def verify_jwt(token: str) -> TokenPayload:
    try:
        payload = decode_access_token(token)
        return TokenPayload(**payload)
    except JWTError as e:
        logger.warning(f"JWT error: {e}")
    except PydanticValidationError as e:
        logger.warning(f"Malformed token claims: {e}")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_jwt(credentials.credentials)
    try:
        return Principal.from_token(payload)
    except ValueError:
        logger.warning(f"Token for user {payload.sub} carries unknown role {payload.role}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from app.core.config import settings
from uuid import UUID

bearer_scheme = HTTPBearer()


def decode_subject(token: str) -> UUID:
    """Returns the user id in the `sub` claim of a bearer token, or raises 401."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = payload.get("sub")
        if not user_id:
            raise credentials_exception
        return UUID(user_id)
    except (JWTError, ValueError):
        raise credentials_exception


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> UUID:
    return decode_subject(credentials.credentials)

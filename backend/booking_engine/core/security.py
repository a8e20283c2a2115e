"""
Caller identity.

Authentication lives in an external identity service; it issues HS256 bearer
tokens signed with the shared SECRET_KEY. The engine only verifies them and
reads the opaque subject and the administrator flag. Guests are anonymous
callers who may present the per-booking guest token.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_engine.core.config import get_settings
from booking_engine.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    subject: Optional[str] = None
    is_admin: bool = False
    guest_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.subject is not None



def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token the way the identity service does (used by tests and tooling)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning("token_rejected", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Identity(subject=str(subject), is_admin=bool(payload.get("is_admin", False)))


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_guest_token: Optional[str] = Header(default=None),
) -> Identity:
    """Identity of the caller; anonymous (guest) when no bearer token is sent."""
    if credentials is None:
        return Identity(guest_token=x_guest_token)
    return decode_access_token(credentials.credentials)


async def get_authenticated_identity(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def get_admin_identity(identity: Identity = Depends(get_authenticated_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required",
        )
    return identity

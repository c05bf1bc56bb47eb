"""Bearer token helpers (HS256 JWT)."""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from jose import jwt
from jose.exceptions import JWTError

from app.core.config import settings
from app.core.errors import ConfigurationError


def create_access_token(account_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
    if not settings.JWT_SECRET:
        raise ConfigurationError("JWT_SECRET is not set")

    expire = datetime.now(timezone.utc) + expires_in
    to_encode = {"sub": account_id, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict]:
    if not settings.JWT_SECRET:
        return None

    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

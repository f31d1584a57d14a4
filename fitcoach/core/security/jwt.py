"""Access-token verification.

Tokens are minted by the identity service; this module only needs to read
them. ``create_access_token`` exists for local tooling and tests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from fitcoach.config.settings import settings

ACCESS_TOKEN_TYPE = "access"


@dataclass
class TokenData:
    """Claims extracted from a verified token."""

    user_id: str
    token_type: str


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a signed access token for ``user_id``."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    payload = {
        "sub": user_id,
        "type": ACCESS_TOKEN_TYPE,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> TokenData | None:
    """Decode and verify an access token. Returns None if invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.PyJWTError:
        return None

    user_id = payload.get("sub")
    token_type = payload.get("type")
    if not user_id or token_type != ACCESS_TOKEN_TYPE:
        return None

    return TokenData(user_id=user_id, token_type=token_type)

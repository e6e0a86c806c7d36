"""JWT helpers. Tokens are issued by the identity provider; the service only verifies them."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from economy.core.config import settings
from economy.log.logging import logger


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token.

    Used by tests and local tooling to mint tokens the same way the identity
    provider does.

    Args:
        data: Claims to encode (``sub`` is the user id, ``role`` is optional)
        expires_delta: Optional lifetime, defaults to the configured expiry

    Returns:
        JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.debug("Access token created", event_type="token_created", subject=data.get("sub"), expires_at=expire.isoformat())
    return encoded_jwt


def verify_jwt_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a JWT.

    Raises:
        jose.ExpiredSignatureError: If the token has expired
        jose.JWTError: If the signature or claims are invalid
    """
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])

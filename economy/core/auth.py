"""Authentication dependencies.

Tokens are issued by the external identity provider. The ``sub`` claim carries
the user id, which must exist in the local ``users`` mirror.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status, Request, Header
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.config import settings
from economy.core.database import get_db
from economy.core.exceptions import EconomyException
from economy.core.security import verify_jwt_token
from economy.models.user import User
from economy.log.logging import logger

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=False)


def _credentials_exception(detail: str = "Could not validate credentials", error_type: str = "AuthError"):
    return EconomyException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
        context={"error_type": error_type}
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from the JWT token.

    Args:
        token: JWT token
        db: Database session

    Returns:
        User: Current authenticated user

    Raises:
        EconomyException: 401 if the token is invalid or the user is unknown
    """
    try:
        payload = verify_jwt_token(token)
        subject = payload.get("sub")
        if subject is None:
            raise _credentials_exception()
    except jwt.ExpiredSignatureError:
        raise _credentials_exception("Session expired. Please log in again.", "TokenExpired")
    except JWTError as e:
        logger.debug(
            f"JWT validation error: {str(e)}",
            event_type="auth_debug",
            error_details=str(e)
        )
        raise _credentials_exception()

    user = await db.get(User, str(subject))
    if user is None:
        raise _credentials_exception()
    return user


async def get_current_user_optional(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    The current user when a valid token is sent, otherwise None.

    Used by endpoints that also serve anonymous callers, such as the
    generation quota.
    """
    if not token:
        return None
    try:
        return await get_current_user(token=token, db=db)
    except EconomyException:
        return None


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        logger.warning(
            f"Non-admin user {current_user.id} attempted an admin operation",
            event_type="security_violation",
            user_id=current_user.id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return current_user


async def get_internal_service(
    request: Request,
    api_key: str = Header(..., description="API key for service-to-service communication")
) -> str:
    """
    Authenticate internal callers (generation pipeline, verification hooks) by API key.

    Returns:
        str: Service identifier

    Raises:
        HTTPException: 500 if no key is configured, 403 if the key is wrong
    """
    if not settings.INTERNAL_API_KEY:
        logger.error(
            "INTERNAL_API_KEY not configured in settings",
            event_type="config_error",
            endpoint=request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal service authentication not configured"
        )

    if api_key != settings.INTERNAL_API_KEY:
        logger.warning(
            "Invalid API key attempt for internal service",
            event_type="security_violation",
            endpoint=request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key for internal service access"
        )

    return "internal_service"

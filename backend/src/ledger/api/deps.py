"""FastAPI dependencies for database sessions, authentication and collaborators."""
import hmac
from typing import Optional
from uuid import UUID

import jwt
import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import async_sessionmaker

from ledger.auth.jwt import jwt_auth
from ledger.config import settings
from ledger.database import AsyncSessionLocal, get_db  # noqa: F401
from ledger.integrations.stock_provider import StockProvider

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Get current authenticated user from the identity provider's access token.

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        dict: Decoded token claims (sub, email, role, app_metadata)

    Raises:
        HTTPException: If token is invalid, expired, or missing
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid access token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    structlog.contextvars.bind_contextvars(user_id=payload.get("sub"))
    return payload


def user_id_of(current_user: dict) -> UUID:
    """User id from verified token claims."""
    return UUID(current_user["sub"])


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Authorize the renewal trigger.

    Accepts the shared secret in ``X-Cron-Secret`` or as a bearer token and
    compares it in constant time. Every call is rejected when no secret is
    configured.

    Raises:
        HTTPException: 401 if the secret is missing or wrong
    """
    expected = settings.billing_cron_secret
    provided = x_cron_secret
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not expected or not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("cron_unauthorized", secret_configured=bool(expected), secret_provided=bool(provided))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_session_factory() -> async_sessionmaker:
    """Session factory for work that needs one transaction per item."""
    return AsyncSessionLocal


def get_stock_provider() -> StockProvider:
    """Fulfillment provider client built from settings."""
    return StockProvider()

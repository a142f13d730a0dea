"""JWT verification for identity provider access tokens.

Sessions are issued by the identity provider; this service only verifies
the HS256-signed access tokens it hands out and reads the caller's id,
email and roles from them.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

import jwt

from ledger.config import settings


class JWTAuth:
    """JWT verification handler for identity provider tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        """
        Initialize JWT auth.

        Args:
            secret_key: Shared signing secret (defaults to settings.jwt_secret_key)
            algorithm: Signing algorithm (defaults to settings.jwt_algorithm)
            audience: Expected audience, or None to skip the check
        """
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.audience = audience if audience is not None else settings.jwt_audience
        self.access_token_expire_minutes = 60

    def create_access_token(
        self,
        user_id: UUID,
        email: Optional[str] = None,
        roles: Optional[List[str]] = None,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        """
        Create an access token shaped like the identity provider's.

        Used by tests and local tooling; production tokens come from the
        identity provider.

        Args:
            user_id: User UUID
            email: User email
            roles: Application roles placed in ``app_metadata.roles``
            expires_in: Lifetime (defaults to one hour)

        Returns:
            Encoded JWT token
        """
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": "authenticated",
            "app_metadata": {"roles": roles or []},
            "iat": now,
            "exp": now + (expires_in or timedelta(minutes=self.access_token_expire_minutes)),
        }
        if self.audience:
            claims["aud"] = self.audience

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Args:
            token: JWT token string

        Returns:
            Decoded token claims

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid or has no subject
        """
        options = {"verify_signature": True, "require": ["exp", "sub"]}
        if not self.audience:
            options["verify_aud"] = False

        payload = jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            audience=self.audience or None,
            options=options,
        )

        try:
            UUID(payload["sub"])
        except (TypeError, ValueError):
            raise jwt.InvalidTokenError("Token subject is not a user id")

        return payload


def roles_from_claims(payload: Dict) -> List[str]:
    """Application roles carried in ``app_metadata.roles``."""
    app_metadata = payload.get("app_metadata") or {}
    roles = app_metadata.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return [str(role) for role in roles]


# Global JWT auth instance
jwt_auth = JWTAuth()

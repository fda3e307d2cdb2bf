"""JWT verification for the operator API.

Sessions are issued by the dashboard, which shares JWT_SECRET_KEY with this
service. The only claim relied on is ``sub``, the acting user's ID.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt

from hookrelay.config import settings


class JWTAuth:
    """JWT authentication handler with a shared signing secret."""

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.access_token_expire_minutes = 60

    def create_access_token(self, user_id: UUID, additional_claims: Optional[Dict[str, Any]] = None) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User UUID
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": "access",
        }
        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode an access token.

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid or not an access token
        """
        payload = jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"require": ["sub", "exp"]},
        )

        if payload.get("type", "access") != "access":
            raise jwt.InvalidTokenError("Not an access token")

        try:
            payload["user_id"] = UUID(str(payload["sub"]))
        except ValueError as e:
            raise jwt.InvalidTokenError("Subject is not a user ID") from e

        return payload


# Global JWT auth instance
jwt_auth = JWTAuth()

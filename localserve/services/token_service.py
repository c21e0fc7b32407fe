"""Bearer token issuing and verification."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

ROLES = ("customer", "provider", "admin")


class TokenService:
    """Creates and verifies the JWTs that carry caller identity."""

    def __init__(
        self,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expiration_hours: int = 24,
    ):
        if not jwt_secret:
            raise RuntimeError("JWT_SECRET is not configured.")
        if jwt_secret == "change-me":
            logger.warning("JWT_SECRET is using the default value. Configure a real secret in production.")
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expiration_hours = jwt_expiration_hours

    def create_token(self, user_id: int, role: str, email: Optional[str] = None) -> str:
        """
        Create JWT token for an authenticated account.

        Args:
            user_id: Account identifier
            role: One of customer, provider or admin
            email: Optional email claim

        Returns:
            JWT token string
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")

        now = datetime.now(tz=timezone.utc)
        payload = {
            "user_id": user_id,
            "role": role,
            "exp": now + timedelta(hours=self.jwt_expiration_hours),
            "iat": now,
        }
        if email:
            payload["email"] = email

        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode JWT token.

        Returns:
            Decoded payload if valid, None otherwise
        """
        try:
            payload = jwt.decode(
                token, self.jwt_secret, algorithms=[self.jwt_algorithm]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

        if payload.get("role") not in ROLES or "user_id" not in payload:
            return None
        try:
            payload["user_id"] = int(payload["user_id"])
        except (TypeError, ValueError):
            logger.warning("Rejected token with non-numeric user_id")
            return None
        return payload

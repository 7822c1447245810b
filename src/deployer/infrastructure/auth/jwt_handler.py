"""JWT issuance and bcrypt password hashing for API users."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, cast

import bcrypt
from jose import jwt, JWTError

from deployer.config import AuthSettings


ACCESS = "access"
REFRESH = "refresh"


class JWTHandler:
    """Signs and verifies the bearer tokens accepted by the API."""

    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings

    def _encode(self, claims: dict[str, Any], lifetime: timedelta) -> str:
        claims["exp"] = datetime.now(timezone.utc) + lifetime
        return cast(
            str, jwt.encode(claims, self._settings.secret_key, algorithm=self._settings.algorithm)
        )

    def create_access_token(
        self, subject: str, role: str, username: str = "", email: str = ""
    ) -> str:
        """Short-lived token carrying the role used for permission checks."""
        return self._encode(
            {
                "sub": subject,
                "role": role,
                "username": username or subject,
                "email": email,
                "type": ACCESS,
            },
            timedelta(minutes=self._settings.access_token_expire_minutes),
        )

    def create_refresh_token(self, subject: str) -> str:
        """Long-lived token that can only be exchanged for a new access token."""
        return self._encode(
            {"sub": subject, "type": REFRESH},
            timedelta(days=self._settings.refresh_token_expire_days),
        )

    def decode_token(self, token: str, expected_type: str = ACCESS) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token, self._settings.secret_key, algorithms=[self._settings.algorithm]
            )
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e
        if payload.get("type") != expected_type:
            raise InvalidTokenError(f"Expected a {expected_type} token")
        return cast(dict[str, Any], payload)

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


class InvalidTokenError(Exception):
    """Raised when a token is malformed, expired, or of the wrong type."""

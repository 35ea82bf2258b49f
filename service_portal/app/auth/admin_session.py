"""
Admin authentication: shared API key or HMAC-signed session tokens.
"""

from __future__ import annotations

import hmac
import time
from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from fastapi import Request

from shared.errors import AuthorizationError, ConfigurationError
from shared.logging import get_logger

SESSION_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AdminSession:
    """Authenticated admin context."""

    email: str
    role: str
    method: str
    expires_at: Optional[int] = None


class AdminAuthenticator:
    """Validates admin credentials presented in the Authorization header."""

    def __init__(
        self,
        admin_api_key: str,
        session_secret: str = "",
        *,
        admin_email: str = "admin@ifheindia.org",
        session_ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.admin_api_key = admin_api_key
        self.session_secret = session_secret or admin_api_key
        self.admin_email = admin_email
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock
        self.logger = get_logger("portal.admin_auth")

    def validate_api_key(self, provided: str) -> bool:
        if not self.admin_api_key:
            self.logger.error("ADMIN_API_KEY not configured")
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self.admin_api_key.encode("utf-8"))

    def issue_session_token(self, email: str, role: str = "admin") -> str:
        if not self.session_secret:
            raise ConfigurationError("Admin session secret not configured")
        issued_at = int(self._clock())
        payload = {
            "email": email,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self.session_ttl_seconds,
        }
        return jwt.encode(payload, self.session_secret, algorithm=SESSION_ALGORITHM)

    def validate_session_token(self, token: str) -> Optional[AdminSession]:
        """Return the session when signature and expiry check out, else None."""
        if not self.session_secret:
            return None
        try:
            # Time claims are checked below against the injected clock.
            claims = jwt.decode(
                token,
                self.session_secret,
                algorithms=[SESSION_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp"]},
            )
        except jwt.PyJWTError as exc:
            self.logger.info("Rejected admin session token", error=type(exc).__name__)
            return None

        expires_at = claims.get("exp")
        if not isinstance(expires_at, int) or expires_at < int(self._clock()):
            return None

        return AdminSession(
            email=str(claims.get("email", "")),
            role=str(claims.get("role", "")),
            method="session",
            expires_at=expires_at,
        )

    @staticmethod
    def extract_token(authorization: Optional[str]) -> Optional[str]:
        """Accept both ``Bearer <token>`` and a bare token."""
        if not authorization:
            return None
        if authorization.startswith("Bearer "):
            authorization = authorization[7:]
        return authorization.strip() or None

    def authenticate(self, authorization: Optional[str]) -> AdminSession:
        token = self.extract_token(authorization)
        if token is None:
            raise AuthorizationError("Authentication required")

        if self.validate_api_key(token):
            return AdminSession(email=self.admin_email, role="admin", method="api_key")

        session = self.validate_session_token(token)
        if session is not None and session.role == "admin":
            return session

        raise AuthorizationError("Invalid authentication credentials")

    async def require_admin(self, request: Request) -> AdminSession:
        """FastAPI dependency guarding admin routes."""
        session = self.authenticate(request.headers.get("Authorization"))
        request.state.admin = session
        return session

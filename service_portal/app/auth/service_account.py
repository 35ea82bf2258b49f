"""
Service-account authentication for the spreadsheet API.

``CredentialSigner`` builds an RS256-signed assertion identifying the service
account; ``TokenCache`` exchanges it for a short-lived bearer credential and
keeps that credential until shortly before it expires.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from shared.errors import AuthenticationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ASSERTION_LIFETIME_SECONDS = 3600
SAFETY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class Credential:
    """Bearer credential; ``expires_at`` already has the safety margin subtracted."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return bool(self.value) and now < self.expires_at


class CredentialSigner:
    """Builds and signs service-account assertions."""

    def __init__(
        self,
        issuer: str,
        private_key_pem: str,
        *,
        scope: str = SHEETS_SCOPE,
        audience: str = GOOGLE_TOKEN_URI,
        lifetime_seconds: int = ASSERTION_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.issuer = issuer
        self.scope = scope
        self.audience = audience
        self.lifetime_seconds = lifetime_seconds
        self._private_key_pem = private_key_pem
        self._clock = clock
        self._key: Optional[RSAPrivateKey] = None

    def _load_key(self) -> RSAPrivateKey:
        if self._key is not None:
            return self._key

        if not self.issuer or not self._private_key_pem:
            raise AuthenticationError(
                "Service account credentials not configured",
                details={"issuer_set": bool(self.issuer), "key_set": bool(self._private_key_pem)},
            )

        # Keys pasted into env files usually carry literal "\n" sequences.
        pem = self._private_key_pem.replace("\\n", "\n").strip().encode("utf-8")
        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise AuthenticationError("Service account private key is malformed") from exc

        if not isinstance(key, RSAPrivateKey):
            raise AuthenticationError("Service account private key must be an RSA key")

        self._key = key
        return key

    def build_claims(self, issued_at: int) -> Dict[str, Any]:
        """Assertion payload for a token exchange issued at ``issued_at``."""
        return {
            "iss": self.issuer,
            "scope": self.scope,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }

    def sign(self, issued_at: Optional[int] = None) -> str:
        """Return a fresh ``header.payload.signature`` assertion."""
        key = self._load_key()
        if issued_at is None:
            issued_at = int(self._clock())
        claims = self.build_claims(issued_at)
        return jwt.encode(claims, key, algorithm="RS256", headers={"typ": "JWT"})


class TokenCache:
    """Holds the current bearer credential and re-derives it on expiry.

    Concurrent callers that all find the cache stale each perform their own
    exchange; the last one to finish wins. Replacement swaps the whole
    ``Credential`` object, so readers never see a half-updated value.
    """

    def __init__(
        self,
        signer: CredentialSigner,
        *,
        token_uri: str = GOOGLE_TOKEN_URI,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        safety_margin_seconds: int = SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.signer = signer
        self.token_uri = token_uri
        self.safety_margin_seconds = safety_margin_seconds
        self.logger = get_logger("portal.token_cache")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock
        self._metrics = metrics
        self._credential: Optional[Credential] = None

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def invalidate(self) -> None:
        """Drop the cached credential so the next call exchanges a new assertion."""
        self._credential = None

    async def get_token(self) -> Credential:
        """Return a valid credential, exchanging a new assertion when needed."""
        cached = self._credential
        if cached is not None and cached.is_valid(self._clock()):
            return cached

        credential = await self._exchange()
        self._credential = credential
        return credential

    async def _exchange(self) -> Credential:
        issued_at = int(self._clock())
        assertion = self.signer.sign(issued_at)

        try:
            response = await self._client.post(
                self.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            self._record("error")
            self.logger.error("Token exchange transport failure", error=str(exc))
            raise AuthenticationError("Token exchange failed", str(exc)) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code != 200:
            self._record("rejected")
            reason = payload.get("error_description") or payload.get("error") or f"HTTP {response.status_code}"
            self.logger.error("Token exchange rejected", status_code=response.status_code, reason=reason)
            raise AuthenticationError("Token exchange rejected", reason, {"status_code": response.status_code})

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            self._record("rejected")
            raise AuthenticationError("Token exchange returned no access token")

        try:
            lifetime = int(payload.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        except (TypeError, ValueError):
            lifetime = ASSERTION_LIFETIME_SECONDS

        self._record("ok")
        self.logger.info("Obtained service-account credential", expires_in=lifetime)
        return Credential(
            value=access_token,
            expires_at=issued_at + lifetime - self.safety_margin_seconds,
        )

    def _record(self, status: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter("token_exchanges_total", status=status)

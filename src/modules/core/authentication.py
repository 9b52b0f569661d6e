"""Bearer JWT authentication for Django REST Framework.

Tokens are issued by the marketplace identity service and carry the
subject id (``sub``) and a ``role`` claim.  They are verified with PyJWT
against the shared secret configured in settings (``JWT_SECRET``).

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401, and so does
  a token whose ``role`` is not one of the known roles.
* ``algorithms`` is hard-coded to the configured value (default HS256).
  Never derived from the incoming token (prevents algorithm-confusion
  attacks).
* Issuer and audience are validated whenever they are configured.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt as pyjwt
import structlog
from django.conf import settings
from django.db import models
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = structlog.get_logger(__name__)


class Role(models.TextChoices):
    CONSUMER = "consumer", "Consumer"
    VENDOR = "vendor", "Vendor"
    ADMIN = "admin", "Admin"


class Principal:
    """Lightweight user object for requests authenticated by bearer token.

    The identity service is the source of truth: we do **not** require a
    local Django ``User`` row.  Views and policies read ``.id`` / ``.role``.
    """

    # DRF checks
    is_authenticated = True
    is_active = True
    is_anonymous = False

    def __init__(self, payload: dict[str, Any]):
        self.payload = payload
        self.id: str = str(payload.get("sub", ""))
        self.role: str = payload.get("role", "")

    @property
    def sub(self) -> str:
        return self.id

    @property
    def pk(self) -> str:
        # throttles key authenticated callers on ``user.pk``
        return self.id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.role == Role.VENDOR

    @property
    def is_consumer(self) -> bool:
        return self.role == Role.CONSUMER

    @classmethod
    def of(cls, subject: str, role: str) -> Principal:
        return cls({"sub": subject, "role": str(role)})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return (self.id, self.role) == (other.id, other.role)

    def __hash__(self) -> int:
        return hash((self.id, self.role))

    def __repr__(self) -> str:
        return f"Principal(id={self.id!r}, role={self.role!r})"

    def __str__(self) -> str:  # pragma: no cover
        return self.id


def issue_token(
    subject: str,
    role: str,
    *,
    expires_in: timedelta | None = None,
    **claims: Any,
) -> str:
    """Mint a bearer token the way the identity service does.

    Used by the ``issue_token`` management command and by tests.
    """
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": str(role),
        "iat": now,
        "exp": now + (expires_in or settings.JWT_ACCESS_TOKEN_LIFETIME),
    }
    if settings.JWT_ISSUER:
        payload["iss"] = settings.JWT_ISSUER
    if settings.JWT_AUDIENCE:
        payload["aud"] = settings.JWT_AUDIENCE
    payload.update(claims)
    return pyjwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class BearerTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates marketplace Bearer tokens."""

    keyword = "Bearer"

    # ------------------------------------------------------------------
    # Public API (DRF contract)
    # ------------------------------------------------------------------

    def authenticate(self, request):
        """Return ``(Principal, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None  # no credentials - DRF answers 401 via permissions

        token = self._extract_token(header)
        payload = self._decode_token(token)

        role = payload.get("role")
        if role not in Role.values:
            logger.warning("jwt_unknown_role", role=role)
            raise AuthenticationFailed("Token carries no valid role.")
        if not payload.get("sub"):
            raise AuthenticationFailed("Token carries no subject.")

        principal = Principal(payload)
        logger.info("jwt_authenticated", sub=principal.id, role=principal.role)
        return (principal, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_token(self, header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != self.keyword.lower():
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        options = {"require": ["sub", "exp"]}
        try:
            payload = pyjwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE or None,
                issuer=settings.JWT_ISSUER or None,
                options={**options, "verify_aud": bool(settings.JWT_AUDIENCE)},
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed("Invalid or expired token.") from exc
        return payload

"""Domain error taxonomy shared by every bounded context.

The API layer maps each base class to one HTTP status (see
``modules.core.exceptions``); modules raise their own subclasses so
callers can catch either the precise error or the whole family.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all expected, caller-facing failures."""

    code = "error"

    def __init__(self, detail: str = "", *, code: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail or self.__class__.__doc__ or ""
        if code is not None:
            self.code = code


class ValidationError(DomainError):
    """Malformed or missing input (structural, not a business rule)."""

    code = "invalid"


class AuthorizationError(DomainError):
    """Valid credential, but the caller may not touch this resource."""

    code = "permission_denied"


class NotFoundError(DomainError):
    """The referenced resource does not exist."""

    code = "not_found"


class BusinessRuleViolation(DomainError):
    """The request is well-formed but breaks a business rule."""

    code = "business_rule_violation"


class ConflictError(DomainError):
    """The resource changed since the caller last observed it."""

    code = "conflict"

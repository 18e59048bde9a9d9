"""Domain errors raised by the diagnosis and credit services.

Routers translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for expected service failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ServiceError):
    """Malformed or missing input. Raised before any side effect."""


class AuthError(ServiceError):
    """Invalid, expired or absent credentials."""


class InsufficientCredits(ServiceError):
    """A decrement would take the balance below zero."""

    def __init__(self, user_id: str, required: int, available: Optional[int] = None):
        detail = f"Insufficient credits for {user_id}. Required: {required}"
        if available is not None:
            detail += f", available: {available}"
        super().__init__(detail)
        self.user_id = user_id
        self.required = required
        self.available = available


class ProviderError(ServiceError):
    """An external provider failed or returned unparseable data."""


class LedgerCommitWarning(ServiceError):
    """Content was delivered but the balance update did not persist."""

    def __init__(self, user_id: str, reason: str):
        super().__init__(f"Credit debit for {user_id} was not persisted: {reason}")
        self.user_id = user_id
        self.reason = reason

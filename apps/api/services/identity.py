"""Caller identity resolution.

Verification never raises for bad credentials: it returns an unauthenticated
``IdentityResult`` so callers decide whether that is fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import json
import logging
import threading
from typing import Any, Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials as firebase_credentials
from firebase_admin import exceptions as firebase_exceptions

from config import settings
from services.errors import AuthError

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "hucks-identity"


@dataclass(frozen=True)
class IdentityResult:
    user_id: Optional[str] = None
    email: Optional[str] = None
    reason: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id)

    @classmethod
    def anonymous(cls, reason: str) -> "IdentityResult":
        return cls(user_id=None, reason=reason)

    def require(self) -> "IdentityResult":
        """Return self, or raise ``AuthError`` for unauthenticated callers."""
        if not self.authenticated:
            raise AuthError(self.reason or "Not authenticated.")
        return self


class TokenVerifier(ABC):
    @abstractmethod
    async def verify(self, token: Optional[str]) -> IdentityResult:
        raise NotImplementedError


def _service_account_credential():
    if settings.FIREBASE_CREDENTIALS_JSON:
        return firebase_credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON))
    if settings.FIREBASE_CREDENTIALS_FILE:
        return firebase_credentials.Certificate(settings.FIREBASE_CREDENTIALS_FILE)
    return None


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens minted by the frontend's Firebase Auth login.

    The Firebase app is created on first use so importing this module needs no
    credentials. With no service-account file configured, the project id alone
    is enough to check signatures against Google's public certificates.
    """

    def __init__(self, app: Optional[Any] = None, *, check_revoked: Optional[bool] = None):
        self._app = app
        self._app_lock = threading.Lock()
        self._check_revoked = settings.FIREBASE_CHECK_REVOKED if check_revoked is None else check_revoked

    def _firebase_app(self):
        if self._app is not None:
            return self._app
        with self._app_lock:
            if self._app is None:
                try:
                    self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
                except ValueError:
                    credential = _service_account_credential()
                    options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
                    self._app = firebase_admin.initialize_app(credential, options, name=FIREBASE_APP_NAME)
        return self._app

    def _decode(self, token: str) -> dict:
        return firebase_auth.verify_id_token(token, app=self._firebase_app(), check_revoked=self._check_revoked)

    async def verify(self, token: Optional[str]) -> IdentityResult:
        if not token:
            return IdentityResult.anonymous("Missing Bearer ID token.")
        try:
            claims = await asyncio.to_thread(self._decode, token)
        except (ValueError, OSError, firebase_exceptions.FirebaseError) as exc:
            # CertificateFetchError lands here too; the caller is served as anonymous.
            logger.info("ID token rejected: %s", exc)
            return IdentityResult.anonymous("Invalid or expired ID token.")

        user_id = str(claims.get("uid") or claims.get("sub") or "").strip()
        if not user_id:
            return IdentityResult.anonymous("ID token missing subject.")
        return IdentityResult(user_id=user_id, email=claims.get("email") or None)

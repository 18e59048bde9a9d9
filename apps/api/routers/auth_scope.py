"""Authentication dependencies for API user scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from routers.providers import get_token_verifier
from services.errors import AuthError
from services.identity import IdentityResult, TokenVerifier


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
) -> Optional[str]:
    """Raw Bearer token, or None when the header is missing or not Bearer."""
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials or None


async def get_optional_identity(
    token: Optional[str] = Depends(get_bearer_token),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> IdentityResult:
    """Resolve the caller, degrading to anonymous on missing or bad credentials.

    FastAPI caches this per request, so the rate limiter and the route share a
    single token verification.
    """
    return await verifier.verify(token)


async def get_auth_context(
    identity: IdentityResult = Depends(get_optional_identity),
) -> AuthContext:
    """Resolve authenticated user from the Firebase ID token."""
    try:
        identity.require()
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=exc.message) from exc
    return AuthContext(user_id=str(identity.user_id), email=identity.email)

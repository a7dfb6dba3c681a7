"""
keg_gateway.auth.deps

FastAPI dependency functions for authentication.

Responsibilities:
- Convert a bearer token into verified `TokenClaims` (access or renewal).
- Keep token handling out of the routers.
"""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from keg_gateway.auth.models import TokenClaims
from keg_gateway.auth.tokens import TokenService
from keg_gateway.errors import MalformedTokenError

_bearer = HTTPBearer(auto_error=False)


def token_service(request: Request) -> TokenService:
    # Created once in the app lifespan (see `keg_gateway.api.app`).
    return request.app.state.tokens  # type: ignore[attr-defined]


def bearer_token(creds: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> str:
    if creds is None or not creds.credentials:
        raise MalformedTokenError("missing bearer token")
    return creds.credentials


def get_claims(
    token: str = Depends(bearer_token),
    tokens: TokenService = Depends(token_service),
) -> TokenClaims:
    # Access tokens only; renewal tokens are rejected as malformed here.
    return tokens.verify(token)


# --- Module Notes -----------------------------------------------------------
# Scope checks are not done here: the archive gateway guards every operation
# itself, so the same check applies to non-HTTP callers.

"""
keg_gateway.api.routers.session

Login, renewal and identity endpoints.

Responsibilities:
- Exchange directory credentials (HTTP Basic) for an access/renewal token pair.
- Exchange a renewal token for a fresh access token.
- Echo the verified claims of the caller.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from keg_gateway.api.deps import authentication_service
from keg_gateway.auth.deps import bearer_token, get_claims
from keg_gateway.auth.models import TokenClaims
from keg_gateway.services.authentication import AuthenticationService

router = APIRouter(prefix="/v1", tags=["session"])

_basic = HTTPBasic()


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    roles: list[str]
    scopes: list[str]


class LoginResponse(AccessTokenResponse):
    renewal_token: str
    renewal_expires_in: int


class ClaimsResponse(BaseModel):
    sub: str
    name: str
    roles: list[str]
    scopes: list[str]
    iat: int
    exp: int
    iss: str

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> ClaimsResponse:
        return cls(
            sub=claims.subject,
            name=claims.name,
            roles=list(claims.roles),
            scopes=sorted(claims.scopes),
            iat=claims.issued_at,
            exp=claims.expires_at,
            iss=claims.issuer,
        )


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: HTTPBasicCredentials = Depends(_basic),
    service: AuthenticationService = Depends(authentication_service),
) -> LoginResponse:
    result = await service.login(credentials.username, credentials.password)
    return LoginResponse(
        access_token=result.access.token,
        expires_in=result.access.expires_in,
        roles=list(result.roles),
        scopes=sorted(result.scopes),
        renewal_token=result.renewal.token,
        renewal_expires_in=result.renewal.expires_in,
    )


@router.post("/renew", response_model=AccessTokenResponse)
async def renew(
    renewal_token: str = Depends(bearer_token),
    service: AuthenticationService = Depends(authentication_service),
) -> AccessTokenResponse:
    access = await service.renew(renewal_token)
    return AccessTokenResponse(
        access_token=access.token,
        expires_in=access.expires_in,
        roles=list(access.claims.roles),
        scopes=sorted(access.claims.scopes),
    )


@router.get("/me", response_model=ClaimsResponse)
async def me(claims: TokenClaims = Depends(get_claims)) -> ClaimsResponse:
    return ClaimsResponse.from_claims(claims)

"""
keg_gateway.services.authentication

Login and renewal flows.

Responsibilities:
- Bind the caller, resolve memberships and issue an access/renewal token pair.
- Exchange a renewal token for a fresh access token with re-resolved scopes.
"""

from __future__ import annotations

from dataclasses import dataclass

from keg_gateway.auth.models import Identity
from keg_gateway.auth.tokens import IssuedToken, TokenService
from keg_gateway.directory.client import DirectoryClient
from keg_gateway.directory.resolver import Resolution, resolve
from keg_gateway.errors import InvalidCredentialsError
from keg_gateway.observability.logging import get_logger
from keg_gateway.settings import DirectorySettings

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LoginResult:
    access: IssuedToken
    renewal: IssuedToken

    @property
    def roles(self) -> tuple[str, ...]:
        return self.access.claims.roles

    @property
    def scopes(self) -> frozenset[str]:
        return self.access.claims.scopes


class AuthenticationService:
    def __init__(
        self,
        *,
        directory: DirectoryClient,
        tokens: TokenService,
        settings: DirectorySettings,
    ) -> None:
        self._directory = directory
        self._tokens = tokens
        self._settings = settings

    async def login(self, uid: str, secret: str) -> LoginResult:
        identity = await self._directory.authenticate(uid, secret)
        resolution = await self._resolve(identity)
        access = self._tokens.issue_access(identity, resolution.roles, resolution.scopes)
        renewal = self._tokens.issue_renewal(identity, resolution.roles)
        log.info("login_succeeded", sub=identity.uid, roles=list(resolution.roles))
        return LoginResult(access=access, renewal=renewal)

    async def renew(self, renewal_token: str) -> IssuedToken:
        """
        Issue a new access token for the subject of a valid renewal token.

        Memberships are resolved again, so scopes removed in the directory since
        login are not carried over. A subject whose member entry was removed cannot
        renew.
        """

        claims = self._tokens.verify(renewal_token, renewal=True)
        if not await self._directory.member_exists(claims.subject):
            log.info("renewal_rejected", sub=claims.subject, reason="member_removed")
            raise InvalidCredentialsError("the member no longer exists in the directory")
        identity = self._directory.identity_for(claims.subject, claims.name)
        resolution = await self._resolve(identity)
        access = self._tokens.issue_access(identity, resolution.roles, resolution.scopes)
        log.info("token_renewed", sub=identity.uid)
        return access

    async def _resolve(self, identity: Identity) -> Resolution:
        memberships = await self._directory.fetch_memberships(identity)
        return resolve(memberships, self._settings.title_ordering, self._settings.executive_mapping)

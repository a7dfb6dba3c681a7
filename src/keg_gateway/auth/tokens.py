"""
keg_gateway.auth.tokens

Credential issuing and verification.

Responsibilities:
- Sign identity + ordered roles + scope snapshot into a compact JWT (RSA).
- Verify tokens with the public key only: structure, signature, expiry, kind.
- Classify every rejection as malformed, expired or signature-invalid.

Verification is CPU-only: no directory or store call, so a membership revoked in
the directory stays effective in an issued token until it expires.
"""

from __future__ import annotations

import binascii
import json
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.algorithms import get_default_algorithms
from jwt.utils import base64url_decode

from keg_gateway.auth.keys import KeyMaterial
from keg_gateway.auth.models import Identity, TokenClaims
from keg_gateway.errors import ExpiredTokenError, MalformedTokenError, SignatureInvalidError
from keg_gateway.observability.logging import get_logger
from keg_gateway.settings import TokenSettings

log = get_logger(__name__)

Clock = Callable[[], datetime]

_REQUIRED_CLAIMS = ["ver", "sub", "name", "roles", "scopes", "iat", "exp", "iss", "ren"]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    claims: TokenClaims

    @property
    def expires_in(self) -> int:
        return self.claims.expires_at - self.claims.issued_at


class TokenService:
    def __init__(
        self,
        *,
        keys: KeyMaterial,
        settings: TokenSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._keys = keys
        self._settings = settings
        self._clock = clock
        self._algorithm = get_default_algorithms()[settings.algorithm]

    def issue(
        self,
        identity: Identity,
        roles: Iterable[str],
        scopes: Iterable[str],
        ttl: timedelta,
        *,
        renewal: bool = False,
    ) -> IssuedToken:
        if self._keys.private_key is None:
            raise RuntimeError("token signing requires a private key")
        ttl_seconds = int(ttl.total_seconds())
        if ttl_seconds < 0:
            raise ValueError("ttl must not be negative")

        now = self._clock().timestamp()
        issued_at = int(now)
        # Round up so a token lives at least `ttl`; a zero ttl is expired at once.
        expires_at = math.ceil(now + ttl_seconds) if ttl_seconds else issued_at
        claims = TokenClaims(
            subject=identity.uid,
            name=identity.display_name,
            roles=tuple(roles),
            # Renewal tokens only prove identity; scopes are re-resolved on renewal.
            scopes=frozenset() if renewal else frozenset(scopes),
            issued_at=issued_at,
            expires_at=expires_at,
            issuer=self._settings.issuer,
            renewal=renewal,
        )
        token = jwt.encode(
            claims.to_payload(),
            self._keys.private_key,
            algorithm=self._settings.algorithm,
            headers={"typ": "JWT"},
        )
        log.info(
            "token_issued",
            sub=claims.subject,
            renewal=renewal,
            scopes=sorted(claims.scopes),
            exp=claims.expires_at,
        )
        return IssuedToken(token=token, claims=claims)

    def issue_access(self, identity: Identity, roles: Iterable[str], scopes: Iterable[str]) -> IssuedToken:
        return self.issue(identity, roles, scopes, timedelta(seconds=self._settings.access_ttl_seconds))

    def issue_renewal(self, identity: Identity, roles: Iterable[str]) -> IssuedToken:
        return self.issue(
            identity,
            roles,
            (),
            timedelta(seconds=self._settings.renewal_ttl_seconds),
            renewal=True,
        )

    def verify(self, token: str, *, renewal: bool = False) -> TokenClaims:
        """
        Verify `token` and return its claims.

        Order matters: structure first, then signature over the exact signing input,
        then claims, then expiry. A token whose payload was altered therefore fails on
        the signature even when the altered payload no longer decodes.
        """

        segments = token.split(".") if isinstance(token, str) else []
        if len(segments) != 3 or not all(segments):
            raise MalformedTokenError("token must consist of three segments")

        header = _decode_header(segments[0])
        if header.get("alg") != self._settings.algorithm:
            raise MalformedTokenError(f"unexpected token algorithm: {header.get('alg')!r}")

        self._check_signature(segments)

        try:
            payload = jwt.decode(
                token,
                self._keys.public_key,
                algorithms=[self._settings.algorithm],
                issuer=self._settings.issuer,
                # Expiry is checked below against the injectable clock.
                options={"verify_exp": False, "verify_iat": False, "require": _REQUIRED_CLAIMS},
            )
            claims = TokenClaims.from_payload(payload)
        except jwt.InvalidSignatureError as e:
            raise SignatureInvalidError() from e
        except (jwt.InvalidTokenError, ValueError) as e:
            raise MalformedTokenError(f"token claims are invalid: {e}") from e

        if self._clock().timestamp() >= claims.expires_at:
            raise ExpiredTokenError()
        if claims.renewal != renewal:
            kind = "renewal" if renewal else "access"
            raise MalformedTokenError(f"expected an {kind} token")
        return claims

    def _check_signature(self, segments: list[str]) -> None:
        signing_input = f"{segments[0]}.{segments[1]}".encode("ascii", errors="replace")
        try:
            signature = base64url_decode(segments[2].encode("ascii", errors="replace"))
        except (binascii.Error, ValueError) as e:
            raise SignatureInvalidError() from e
        key = self._algorithm.prepare_key(self._keys.public_key)
        if not self._algorithm.verify(signing_input, key, signature):
            raise SignatureInvalidError()


def _decode_header(segment: str) -> dict[str, Any]:
    # Only the header segment is decoded here; the payload is not read before the
    # signature has been checked.
    try:
        header = json.loads(base64url_decode(segment.encode("ascii")))
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError("token header cannot be decoded") from e
    if not isinstance(header, dict):
        raise MalformedTokenError("token header must be a JSON object")
    return header


# --- Module Notes -----------------------------------------------------------
# There is no revocation mechanism: access tokens are short-lived and renewal
# re-resolves memberships from the directory (see services.authentication).

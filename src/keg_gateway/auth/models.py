"""
keg_gateway.auth.models

Auth domain models.

Responsibilities:
- Define the directory identity produced by a successful bind.
- Define the versioned token claims injected into archive operations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

CLAIMS_VERSION = 1


@dataclass(frozen=True, slots=True)
class Identity:
    """
    A directory identity proven by bind; never persisted by the gateway.
    """

    uid: str
    dn: str
    display_name: str


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """
    Claims carried by a gateway credential.

    `roles` keep the resolved precedence order; `scopes` are the snapshot taken at
    issuance. `renewal` marks long-lived renewal tokens, which carry no scopes.
    """

    subject: str
    name: str
    roles: tuple[str, ...]
    scopes: frozenset[str]
    issued_at: int
    expires_at: int
    issuer: str
    renewal: bool = False
    version: int = CLAIMS_VERSION

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes

    def to_payload(self) -> dict[str, Any]:
        # Scopes are sorted so identical claims always encode identically.
        return {
            "ver": self.version,
            "sub": self.subject,
            "name": self.name,
            "roles": list(self.roles),
            "scopes": sorted(self.scopes),
            "iat": self.issued_at,
            "exp": self.expires_at,
            "iss": self.issuer,
            "ren": self.renewal,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TokenClaims:
        """
        Strict decode of a verified payload. Raises `ValueError` on any missing or
        mistyped claim.
        """

        version = payload.get("ver")
        if version != CLAIMS_VERSION:
            raise ValueError(f"unsupported claims version: {version!r}")
        roles = payload.get("roles")
        scopes = payload.get("scopes")
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ValueError("roles claim must be a list of strings")
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise ValueError("scopes claim must be a list of strings")
        for key in ("sub", "name", "iss"):
            if not isinstance(payload.get(key), str):
                raise ValueError(f"{key} claim must be a string")
        for key in ("iat", "exp"):
            value = payload.get(key)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{key} claim must be an integer")
        if not isinstance(payload.get("ren"), bool):
            raise ValueError("ren claim must be a boolean")
        if not payload["sub"]:
            raise ValueError("sub claim must not be empty")
        return cls(
            subject=payload["sub"],
            name=payload["name"],
            roles=tuple(roles),
            scopes=frozenset(scopes),
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            issuer=payload["iss"],
            renewal=payload["ren"],
            version=version,
        )


# --- Module Notes -----------------------------------------------------------
# Adding a claim means bumping CLAIMS_VERSION and teaching `from_payload` both shapes.

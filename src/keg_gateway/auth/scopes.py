"""
keg_gateway.auth.scopes

Capability check shared by every archive operation.
"""

from __future__ import annotations

from keg_gateway.auth.models import TokenClaims
from keg_gateway.errors import ForbiddenError
from keg_gateway.observability.logging import get_logger

log = get_logger(__name__)


def require_scope(claims: TokenClaims | None, scope: str) -> TokenClaims:
    """
    Return `claims` if they carry `scope`, otherwise raise `ForbiddenError`.

    Renewal tokens never pass: they carry no scopes by construction.
    """

    if claims is None or claims.renewal or not claims.has_scope(scope):
        log.warning(
            "scope_denied",
            sub=claims.subject if claims is not None else None,
            required_scope=scope,
        )
        raise ForbiddenError(f"scope '{scope}' required", required_scope=scope)
    return claims

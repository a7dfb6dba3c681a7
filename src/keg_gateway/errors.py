"""
keg_gateway.errors

Error taxonomy shared by the directory, token and archive layers.

Responsibilities:
- Keep every rejection cause distinguishable (stable `code` per class).
- Carry the HTTP status the API layer maps each cause to.
"""

from __future__ import annotations


class GatewayError(Exception):
    code: str = "gateway_error"
    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# --- Authentication / authorization ----------------------------------------


class AuthError(GatewayError):
    code = "auth_error"
    status_code = 401


class InvalidCredentialsError(AuthError):
    """The directory rejected the supplied credentials."""

    code = "invalid_credentials"
    status_code = 401


class DirectoryUnavailableError(AuthError):
    """The directory server could not be reached or failed the bind."""

    code = "directory_unavailable"
    status_code = 503


class ResolutionFailedError(AuthError):
    """The identity was bound but its memberships could not be resolved."""

    code = "resolution_failed"
    status_code = 503

    def __init__(self, message: str | None = None, *, category: str | None = None) -> None:
        super().__init__(message)
        self.category = category


class ForbiddenError(AuthError):
    """The credential does not carry the scope required for this operation."""

    code = "forbidden"
    status_code = 403

    def __init__(self, message: str | None = None, *, required_scope: str | None = None) -> None:
        super().__init__(message)
        self.required_scope = required_scope


class MemberNotFoundError(GatewayError):
    """No member entry exists under the requested username."""

    code = "member_not_found"
    status_code = 404


# --- Tokens -----------------------------------------------------------------


class TokenError(GatewayError):
    code = "invalid_token"
    status_code = 401


class MalformedTokenError(TokenError):
    """The token is not a well-formed credential of the expected kind."""

    code = "malformed_token"


class ExpiredTokenError(TokenError):
    """The token has expired."""

    code = "expired_token"


class SignatureInvalidError(TokenError):
    """The token signature does not match its content."""

    code = "invalid_signature"


# --- Archive ----------------------------------------------------------------


class ArchiveError(GatewayError):
    code = "archive_error"
    status_code = 500


class DocumentNotFoundError(ArchiveError):
    """The requested document does not exist."""

    code = "not_found"
    status_code = 404


class RevisionConflictError(ArchiveError):
    """The document revision does not match the stored one."""

    code = "conflict"
    status_code = 409


class ArchiveUnavailableError(ArchiveError):
    """The document store could not perform the request."""

    code = "archive_unavailable"
    status_code = 503


class ArchiveForbiddenError(ArchiveError):
    """The document store rejected the gateway's session."""

    code = "archive_forbidden"
    status_code = 502


class InvalidDocumentError(ArchiveError):
    """The document or its identifier is not acceptable for the archive."""

    code = "invalid_document"
    status_code = 422


# --- Module Notes -----------------------------------------------------------
# The API layer renders every GatewayError as {"error": code, "detail": message}
# with `status_code`; see `keg_gateway.api.app`.

"""
keg_gateway.directory.client

LDAP client boundary used to authenticate members and discover their memberships.

Responsibilities:
- Simple-bind a login name (via the configured DN template) and its secret.
- Fan out the five membership searches for a bound identity and join them.
- Look up single member entries (existence, photo) through the service account.
- List the crew: members grouped by register, sutlers and honorary members.
- Translate ldap3 failures into the gateway's auth error taxonomy.

ldap3 is synchronous, so every directory round-trip runs on a worker thread with
its own connection; the connection is unbound on that thread even if the awaiting
coroutine was cancelled or timed out.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn

from keg_gateway.auth.models import Identity
from keg_gateway.directory.models import Crew, Member, MembershipCategory, MembershipResult, Register
from keg_gateway.directory.resolver import order_roles
from keg_gateway.errors import (
    DirectoryUnavailableError,
    InvalidCredentialsError,
    ResolutionFailedError,
)
from keg_gateway.observability.logging import get_logger
from keg_gateway.settings import DirectorySettings, GroupAttributes, MemberAttributes, MembershipQuery

log = get_logger(__name__)

T = TypeVar("T")

# (user dn or None for anonymous, password) -> unbound connection
ConnectionFactory = Callable[[str | None, str | None], Any]

_RESULT_SUCCESS = 0
_RESULT_NO_SUCH_OBJECT = 32
_RESULT_INVALID_CREDENTIALS = 49


class DirectorySearchError(Exception):
    pass


class DirectoryClient:
    def __init__(
        self,
        *,
        settings: DirectorySettings,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._settings = settings
        self._server = ldap3.Server(
            settings.server_uri,
            get_info=ldap3.NONE,
            connect_timeout=settings.timeout_seconds,
        )
        self._connect = connection_factory or self._default_connection

    def _default_connection(self, user: str | None, password: str | None) -> ldap3.Connection:
        return ldap3.Connection(
            self._server,
            user=user,
            password=password,
            receive_timeout=int(self._settings.timeout_seconds) or None,
            raise_exceptions=False,
        )

    def bind_dn(self, uid: str) -> str:
        return self._settings.bind_dn_template.format(uid=escape_rdn(uid))

    def identity_for(self, uid: str, display_name: str) -> Identity:
        """Rebuild the identity of an already authenticated subject without a bind."""
        return Identity(uid=uid, dn=self.bind_dn(uid), display_name=display_name)

    # --- Authentication -----------------------------------------------------

    async def authenticate(self, uid: str, secret: str) -> Identity:
        # An empty secret would turn the simple bind into an unauthenticated bind.
        if not uid or not secret:
            log.info("directory_bind_rejected", uid=uid, reason="empty_credentials")
            raise InvalidCredentialsError()

        dn = self.bind_dn(uid)
        try:
            identity = await self._run(self._bind_identity, uid, dn, secret)
        except TimeoutError as e:
            log.warning("directory_bind_timeout", uid=uid)
            raise DirectoryUnavailableError("directory bind timed out") from e
        log.info("directory_bind_succeeded", uid=uid)
        return identity

    def _bind_identity(self, uid: str, dn: str, secret: str) -> Identity:
        conn = self._connect(dn, secret)
        try:
            if not conn.bind():
                result = conn.result or {}
                if result.get("result") == _RESULT_INVALID_CREDENTIALS:
                    log.info("directory_bind_rejected", uid=uid, reason="invalid_credentials")
                    raise InvalidCredentialsError()
                log.warning("directory_bind_failed", uid=uid, description=result.get("description"))
                raise DirectoryUnavailableError(f"bind failed: {result.get('description')}")
            display_name = self._read_display_name(conn, dn) or uid
            return Identity(uid=uid, dn=dn, display_name=display_name)
        except LDAPException as e:
            log.warning("directory_unreachable", uid=uid, error=str(e))
            raise DirectoryUnavailableError(f"directory unreachable: {e}") from e
        finally:
            _close(conn)

    def _read_display_name(self, conn: Any, dn: str) -> str | None:
        attribute = self._settings.display_name_attribute
        conn.search(
            search_base=dn,
            search_filter="(objectClass=*)",
            search_scope=ldap3.BASE,
            attributes=[attribute],
        )
        for entry in _entries(conn):
            values = _attribute_values(entry, attribute)
            if values:
                return values[0]
        return None

    # --- Membership resolution ----------------------------------------------

    async def fetch_memberships(self, identity: Identity) -> MembershipResult:
        """
        Run all membership searches concurrently and join them.

        Either every category resolves or `ResolutionFailedError` is raised; a partial
        result is never returned.
        """

        categories = list(MembershipCategory)
        outcomes = await asyncio.gather(
            *(self._search_category(category, identity) for category in categories),
            return_exceptions=True,
        )

        found: dict[MembershipCategory, tuple[str, ...]] = {}
        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, BaseException):
                log.warning(
                    "membership_resolution_failed",
                    uid=identity.uid,
                    category=category.value,
                    error=repr(outcome),
                )
                raise ResolutionFailedError(
                    f"cannot resolve {category.value} memberships", category=category.value
                ) from outcome
            found[category] = outcome

        log.info(
            "memberships_resolved",
            uid=identity.uid,
            counts={category.value: len(names) for category, names in found.items()},
        )
        return MembershipResult(found)

    async def _search_category(self, category: MembershipCategory, identity: Identity) -> tuple[str, ...]:
        query = category.query(self._settings)
        search_filter = membership_filter(query, identity)
        return await self._run(self._search, query, search_filter)

    def _search(self, query: MembershipQuery, search_filter: str) -> tuple[str, ...]:
        names: list[str] = []
        for entry in self._search_entries(query.base, search_filter, [query.name_attribute]):
            names.extend(_attribute_values(entry, query.name_attribute))
        return tuple(names)

    def _search_entries(self, base: str, search_filter: str, attributes: list[str]) -> list[dict[str, Any]]:
        conn = self._connect(self._settings.service_bind_dn, self._settings.service_password)
        try:
            if not conn.bind():
                raise DirectorySearchError(f"service bind failed: {(conn.result or {}).get('description')}")
            conn.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=ldap3.SUBTREE,
                attributes=attributes,
            )
            result = conn.result or {}
            # No hits is still a successful search (result code 0).
            if result.get("result", _RESULT_SUCCESS) != _RESULT_SUCCESS:
                raise DirectorySearchError(f"search under {base} failed: {result.get('description')}")
            return _entries(conn)
        finally:
            _close(conn)

    # --- Member entries -------------------------------------------------------

    async def member_exists(self, uid: str) -> bool:
        """Whether an entry still exists under the bind DN of `uid`."""
        entry = await self._read_member(uid, [self._settings.display_name_attribute])
        return entry is not None

    async def member_photo(self, uid: str) -> bytes | None:
        attribute = self._settings.member_attributes.photo
        entry = await self._read_member(uid, [attribute])
        if entry is None:
            return None
        return _binary_value(entry, attribute)

    async def _read_member(self, uid: str, attributes: list[str]) -> dict[str, Any] | None:
        if not uid:
            return None
        try:
            return await self._run(self._read_entry, self.bind_dn(uid), attributes)
        except TimeoutError as e:
            log.warning("directory_lookup_timeout", uid=uid)
            raise DirectoryUnavailableError("directory lookup timed out") from e

    def _read_entry(self, dn: str, attributes: list[str]) -> dict[str, Any] | None:
        conn = self._connect(self._settings.service_bind_dn, self._settings.service_password)
        try:
            if not conn.bind():
                raise DirectoryUnavailableError(
                    f"service bind failed: {(conn.result or {}).get('description')}"
                )
            conn.search(
                search_base=dn,
                search_filter="(objectClass=*)",
                search_scope=ldap3.BASE,
                attributes=attributes,
            )
            result = conn.result or {}
            code = result.get("result", _RESULT_SUCCESS)
            if code == _RESULT_NO_SUCH_OBJECT:
                return None
            if code != _RESULT_SUCCESS:
                raise DirectoryUnavailableError(f"lookup of {dn} failed: {result.get('description')}")
            entries = _entries(conn)
            return entries[0] if entries else None
        except LDAPException as e:
            log.warning("directory_unreachable", dn=dn, error=str(e))
            raise DirectoryUnavailableError(f"directory unreachable: {e}") from e
        finally:
            _close(conn)

    # --- Crew -----------------------------------------------------------------

    async def list_crew(self) -> Crew:
        """
        Read the crew from the directory.

        Nothing is cached: every call runs the member, sutler, honorary and register
        searches concurrently. If any of them fails, `DirectoryUnavailableError` is
        raised and no partial crew is returned.
        """

        settings = self._settings
        member_attributes = settings.member_attributes.listed()
        groups = settings.group_attributes
        listings = [
            (settings.members, member_attributes),
            (settings.sutlers, member_attributes),
            (settings.honorary, member_attributes),
            (settings.registers, [groups.name, groups.name_plural, groups.members]),
        ]
        outcomes = await asyncio.gather(
            *(
                self._run(self._search_entries, query.base, _parenthesize(query.filter), attributes)
                for query, attributes in listings
            ),
            return_exceptions=True,
        )
        for (query, _), outcome in zip(listings, outcomes):
            if isinstance(outcome, BaseException):
                log.warning("crew_listing_failed", base=query.base, error=repr(outcome))
                raise DirectoryUnavailableError(f"cannot list entries under {query.base}") from outcome

        members, sutlers, honorary, registers = outcomes
        crew = build_crew(
            members=members,
            sutlers=sutlers,
            honorary=honorary,
            registers=registers,
            settings=settings,
        )
        log.info(
            "crew_listed",
            registers=len(crew.musicians),
            sutlers=len(crew.sutlers),
            honorary_members=len(crew.honorary_members),
        )
        return crew

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args), timeout=self._settings.timeout_seconds
        )


def membership_filter(query: MembershipQuery, identity: Identity) -> str:
    anchor = query.anchor.format(
        uid=escape_filter_chars(identity.uid),
        dn=escape_filter_chars(identity.dn),
    )
    return f"(&{_parenthesize(query.filter)}{_parenthesize(anchor)})"


def _parenthesize(search_filter: str) -> str:
    search_filter = search_filter.strip()
    if search_filter.startswith("(") and search_filter.endswith(")"):
        return search_filter
    return f"({search_filter})"


def _entries(conn: Any) -> list[dict[str, Any]]:
    # Referrals and continuation references come back as other response types.
    return [entry for entry in (conn.response or []) if entry.get("type") == "searchResEntry"]


def _attribute_values(entry: dict[str, Any], attribute: str) -> list[str]:
    attributes = entry.get("attributes") or {}
    value = attributes.get(attribute)
    if value is None:
        # Fall back to a case-insensitive lookup for plain dicts.
        lowered = attribute.lower()
        value = next((v for k, v in attributes.items() if k.lower() == lowered), None)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v)]
    return [str(value)] if str(value) else []


def build_crew(
    *,
    members: list[dict[str, Any]],
    sutlers: list[dict[str, Any]],
    honorary: list[dict[str, Any]],
    registers: list[dict[str, Any]],
    settings: DirectorySettings,
) -> Crew:
    def people(entries: list[dict[str, Any]]) -> tuple[Member, ...]:
        found = (
            to_member(entry, settings.member_attributes, settings.title_ordering) for entry in entries
        )
        return tuple(sorted(found, key=Member.sort_key))

    musicians = people(members)
    return Crew(
        musicians=tuple(
            sorted(
                (to_register(entry, settings.group_attributes, musicians) for entry in registers),
                key=lambda register: register.name,
            )
        ),
        sutlers=people(sutlers),
        honorary_members=people(honorary),
    )


def to_member(entry: dict[str, Any], attributes: MemberAttributes, title_ordering: tuple[str, ...]) -> Member:
    def first(attribute: str) -> str:
        values = _attribute_values(entry, attribute)
        return values[0] if values else ""

    joining = first(attributes.joining)
    return Member(
        username=first(attributes.username),
        dn=str(entry.get("dn", "")),
        first_name=first(attributes.first_name),
        last_name=first(attributes.last_name),
        common_name=first(attributes.common_name),
        joining=int(joining) if joining.isdigit() else 0,
        titles=order_roles(set(_attribute_values(entry, attributes.titles)), title_ordering),
        mail=tuple(_attribute_values(entry, attributes.mail)),
        mobile=tuple(_attribute_values(entry, attributes.mobile)),
    )


def to_register(entry: dict[str, Any], attributes: GroupAttributes, members: tuple[Member, ...]) -> Register:
    names = _attribute_values(entry, attributes.name)
    plurals = _attribute_values(entry, attributes.name_plural)
    # Group membership is stored as member DNs; DNs compare case-insensitively.
    dns = {dn.casefold() for dn in _attribute_values(entry, attributes.members)}
    name = names[0] if names else ""
    return Register(
        name=name,
        name_plural=plurals[0] if plurals else name,
        members=tuple(member for member in members if member.dn.casefold() in dns),
    )


def _binary_value(entry: dict[str, Any], attribute: str) -> bytes | None:
    # Binary attributes are read from the raw values; decoded attributes may be text.
    for key in ("raw_attributes", "attributes"):
        values = (entry.get(key) or {}).get(attribute)
        if isinstance(values, (list, tuple)):
            values = values[0] if values else None
        if isinstance(values, (bytes, bytearray)) and values:
            return bytes(values)
    return None


def _close(conn: Any) -> None:
    try:
        conn.unbind()
    except LDAPException as e:
        log.debug("directory_unbind_failed", error=str(e))


# --- Module Notes -----------------------------------------------------------
# Timeouts come from `DirectorySettings.timeout_seconds`; a timed out bind is
# reported as DirectoryUnavailableError, a timed out search fails the whole
# resolution with ResolutionFailedError.
# The crew listing uses the same timeout per search and fails with
# DirectoryUnavailableError instead, since no identity is being resolved.

"""
tests.conftest

Shared fixtures and in-memory fakes.

Responsibilities:
- Provide a generated RSA key pair and a controllable clock for token tests.
- Fake the LDAP directory with ldap3-shaped connection objects.
- Fake the document store behind `httpx.MockTransport`.
"""

from __future__ import annotations

import json
import re
import time
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import parse_qs

import httpx
import ldap3
import pytest
import pytest_asyncio
from ldap3.core.exceptions import LDAPSocketOpenError

from keg_gateway.archive.gateway import ArchiveGateway
from keg_gateway.archive.statistics import StatisticsAggregator
from keg_gateway.archive.store import ArchiveStore
from keg_gateway.auth.keys import KeyMaterial
from keg_gateway.auth.models import TokenClaims
from keg_gateway.auth.tokens import TokenService
from keg_gateway.settings import ArchiveSettings, DirectorySettings, TokenSettings

COUCH_URL = "http://couch.test"

MEMBERS_BASE = "ou=Mitglieder,dc=mvl,dc=at"
SUTLERS_BASE = "ou=Marketenderinnen,ou=Mitglieder,dc=mvl,dc=at"
HONORARY_BASE = "ou=Ehrenmitglieder,ou=Mitglieder,dc=mvl,dc=at"
REGISTERS_BASE = "ou=Register,ou=Divisionen,dc=mvl,dc=at"
EXECUTIVES_BASE = "ou=Exekutive,ou=Divisionen,dc=mvl,dc=at"

ALICE_DN = f"uid=alice,{MEMBERS_BASE}"
BOB_DN = f"uid=bob,{MEMBERS_BASE}"
ERIK_DN = f"uid=erik,{MEMBERS_BASE}"


# --- Tokens -----------------------------------------------------------------


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture(scope="session")
def keys() -> KeyMaterial:
    return KeyMaterial.generate()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(issuer="keg-test", access_ttl_seconds=900, renewal_ttl_seconds=3600)


@pytest.fixture
def tokens(keys: KeyMaterial, token_settings: TokenSettings, clock: FakeClock) -> TokenService:
    return TokenService(keys=keys, settings=token_settings, clock=clock)


def make_claims(*scopes: str, renewal: bool = False) -> TokenClaims:
    return TokenClaims(
        subject="alice",
        name="Alice Archivarin",
        roles=("Archivar",),
        scopes=frozenset(scopes),
        issued_at=0,
        expires_at=2**31,
        issuer="keg-test",
        renewal=renewal,
    )


@pytest.fixture
def archive_claims() -> TokenClaims:
    return make_claims("archive")


@pytest.fixture
def unscoped_claims() -> TokenClaims:
    return make_claims()


# --- Directory --------------------------------------------------------------


class FakeDirectory:
    """
    In-memory directory.

    `groups` maps a search base to `(name, member uids)` pairs; a membership search
    returns the names whose member set contains the uid the filter is anchored on.
    `entries` maps DNs to their attributes; a search without an anchor lists every
    entry below its base, like a subtree search does.
    """

    def __init__(
        self,
        *,
        passwords: dict[str, str] | None = None,
        display_names: dict[str, str] | None = None,
        groups: dict[str, list[tuple[str, set[str]]]] | None = None,
        entries: dict[str, dict[str, list[Any]]] | None = None,
        failing_bases: set[str] | None = None,
        unreachable: bool = False,
        bind_delay: float = 0.0,
    ) -> None:
        self.passwords = passwords or {}
        self.display_names = display_names or {}
        self.groups = groups or {}
        self.entries = entries or {}
        self.failing_bases = failing_bases or set()
        self.unreachable = unreachable
        self.bind_delay = bind_delay
        self.binds: list[str | None] = []
        self.searches: list[tuple[str, str]] = []
        self.open_connections = 0

    def exists(self, dn: str) -> bool:
        return dn in self.passwords or dn in self.display_names or dn in self.entries

    def attributes_of(self, dn: str) -> dict[str, list[Any]]:
        attributes = dict(self.entries.get(dn, {}))
        if dn in self.display_names:
            attributes["cn"] = [self.display_names[dn]]
        return attributes

    def connect(self, user: str | None, password: str | None) -> FakeConnection:
        self.open_connections += 1
        return FakeConnection(self, user, password)


class FakeConnection:
    def __init__(self, directory: FakeDirectory, user: str | None, password: str | None) -> None:
        self._directory = directory
        self._user = user
        self._password = password
        self.result: dict[str, Any] = {}
        self.response: list[dict[str, Any]] = []

    def bind(self) -> bool:
        directory = self._directory
        directory.binds.append(self._user)
        if directory.bind_delay:
            time.sleep(directory.bind_delay)
        if directory.unreachable:
            raise LDAPSocketOpenError("socket connection error while opening")
        if self._user is None or directory.passwords.get(self._user) == self._password:
            self.result = {"result": 0, "description": "success"}
            return True
        self.result = {"result": 49, "description": "invalidCredentials"}
        return False

    def search(
        self,
        search_base: str,
        search_filter: str,
        search_scope: str = ldap3.SUBTREE,
        attributes: list[str] | None = None,
    ) -> bool:
        directory = self._directory
        directory.searches.append((search_base, search_filter))
        attribute = (attributes or ["cn"])[0]
        self.response = []

        if search_base in directory.failing_bases:
            self.result = {"result": 1, "description": "operationsError"}
            return False

        if search_scope == ldap3.BASE:
            if not directory.exists(search_base):
                self.result = {"result": 32, "description": "noSuchObject"}
                return False
            self.response = [_listed(search_base, directory.attributes_of(search_base), attributes)]
        elif not search_filter.startswith("(&"):
            suffix = f",{search_base}".casefold()
            self.response = [
                _listed(dn, values, attributes)
                for dn, values in directory.entries.items()
                if dn.casefold().endswith(suffix)
            ]
        else:
            for name, members in directory.groups.get(search_base, []):
                if any(_anchored_on(search_filter, uid) for uid in members):
                    self.response.append(_entry(f"cn={name},{search_base}", attribute, name))
        self.result = {"result": 0, "description": "success"}
        return True

    def unbind(self) -> bool:
        self._directory.open_connections -= 1
        return True


def _entry(dn: str, attribute: str, value: str) -> dict[str, Any]:
    return {"type": "searchResEntry", "dn": dn, "attributes": {attribute: [value]}}


def _listed(dn: str, values: dict[str, list[Any]], requested: list[str] | None) -> dict[str, Any]:
    wanted = {a.lower() for a in requested or []}
    selected = {k: v for k, v in values.items() if k.lower() in wanted}
    return {"type": "searchResEntry", "dn": dn, "attributes": selected, "raw_attributes": selected}


def _anchored_on(search_filter: str, uid: str) -> bool:
    # (uid=alice) for member entries, (member=uid=alice,ou=...) for groups.
    return f"uid={uid})" in search_filter or f"uid={uid}," in search_filter


@pytest.fixture
def directory_settings() -> DirectorySettings:
    return DirectorySettings(server_uri="ldap://directory.test", timeout_seconds=2.0)


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory(
        passwords={
            ALICE_DN: "geheim",
            BOB_DN: "passwort",
        },
        display_names={ALICE_DN: "Alice Archivarin"},
        groups={
            MEMBERS_BASE: [("Archivar", {"alice"}), ("Obmann", {"bob"})],
            SUTLERS_BASE: [],
            HONORARY_BASE: [("Ehrenkapellmeister", {"carol"})],
            REGISTERS_BASE: [("Flügelhorn", {"alice"}), ("Schlagwerk", {"bob"})],
            EXECUTIVES_BASE: [("Archivare", {"alice"}), ("Vorstand", {"alice", "bob"})],
        },
        entries={
            ALICE_DN: {
                "uid": ["alice"],
                "givenName": ["Alice"],
                "sn": ["Archivarin"],
                "mvlJoining": ["2010"],
                "title": ["Medienreferent", "Archivar"],
                "mail": ["alice@mvl.at"],
                "jpegPhoto": [b"\xff\xd8alice"],
            },
            BOB_DN: {"uid": ["bob"], "givenName": ["Bob"], "sn": ["Obmann"], "mvlJoining": ["1998"], "title": ["Obmann"]},
            ERIK_DN: {"uid": ["erik"], "givenName": ["Erik"], "sn": ["Bauer"], "mvlJoining": ["2010"]},
            f"uid=dora,{SUTLERS_BASE}": {"uid": ["dora"], "givenName": ["Dora"], "sn": ["Wirt"], "mvlJoining": ["2020"]},
            f"uid=carol,{HONORARY_BASE}": {
                "uid": ["carol"],
                "givenName": ["Carol"],
                "sn": ["Kapell"],
                "title": ["Ehrenkapellmeister"],
            },
            f"cn=Schlagwerk,{REGISTERS_BASE}": {"cn": ["Schlagwerk"], "member": [BOB_DN]},
            f"cn=Flügelhorn,{REGISTERS_BASE}": {
                "cn": ["Flügelhorn"],
                "mvlNamePlural": ["Flügelhörner"],
                "member": [ERIK_DN, ALICE_DN.upper()],
            },
        },
    )


# --- Document store ---------------------------------------------------------


class FakeCouch:
    """
    Minimal partitioned document store speaking the subset of the HTTP API the
    gateway uses. Sessions are cookie based, like the real `/_session`.
    """

    def __init__(self, *, username: str = "admin", password: str = "admin") -> None:
        self.username = username
        self.password = password
        self.docs: dict[str, dict[str, Any]] = {}
        self.views: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []
        self.find_bodies: list[dict[str, Any]] = []
        self.session_logins = 0
        self.forced: dict[str, tuple[int, dict[str, Any]]] = {}
        self._session_token: str | None = None

    def expire_sessions(self) -> None:
        self._session_token = None

    def seed(self, doc: dict[str, Any]) -> dict[str, Any]:
        stored = {**doc, "_rev": f"1-{uuid.uuid4().hex}"}
        self.docs[stored["_id"]] = stored
        return stored

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.forced:
            status, body = self.forced[path]
            return httpx.Response(status, json=body)

        if path == "/_session" and request.method == "POST":
            return self._login(request)
        if not self._authorized(request):
            return httpx.Response(
                401, json={"error": "unauthorized", "reason": "You are not authorized to access this db."}
            )

        if path == "/archive/_partition/scores/_all_docs":
            return self._all_docs(request)
        if path == "/archive/_partition/scores/_find":
            return self._find(request)
        if path.startswith("/archive/_design/score/_view/"):
            return self._view(request, path.rsplit("/", 1)[-1])
        if path.startswith("/archive/"):
            doc_id = path[len("/archive/") :]
            if request.method == "GET":
                return self._get(doc_id)
            if request.method == "PUT":
                return self._put(doc_id, json.loads(request.content))
            if request.method == "DELETE":
                return self._delete(doc_id, request.url.params.get("rev"))
        return httpx.Response(404, json={"error": "not_found", "reason": "missing"})

    def _login(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        if form.get("name") != [self.username] or form.get("password") != [self.password]:
            return httpx.Response(
                401, json={"error": "unauthorized", "reason": "Name or password is incorrect."}
            )
        self.session_logins += 1
        self._session_token = uuid.uuid4().hex
        return httpx.Response(
            200,
            json={"ok": True, "name": self.username, "roles": ["_admin"]},
            headers={"Set-Cookie": f"AuthSession={self._session_token}; Path=/; HttpOnly"},
        )

    def _authorized(self, request: httpx.Request) -> bool:
        cookie = request.headers.get("cookie", "")
        return self._session_token is not None and f"AuthSession={self._session_token}" in cookie

    def _all_docs(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        skip = int(params.get("skip", "0"))
        limit = int(params.get("limit", str(len(self.docs))))
        ids = sorted(self.docs)
        rows = [
            {"id": i, "key": i, "value": {"rev": self.docs[i]["_rev"]}, "doc": self.docs[i]}
            for i in ids[skip : skip + limit]
        ]
        return httpx.Response(200, json={"total_rows": len(ids), "offset": skip, "rows": rows})

    def _find(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.find_bodies.append(body)
        docs = [doc for _, doc in sorted(self.docs.items()) if matches(doc, body["selector"])]
        limit = body.get("limit")
        if limit is not None:
            docs = docs[:limit]
        return httpx.Response(
            200,
            json={
                "docs": docs,
                "bookmark": "g1AAAA",
                "execution_stats": {
                    "total_keys_examined": 0,
                    "total_docs_examined": len(self.docs),
                    "total_quorum_docs_examined": 0,
                    "results_returned": len(docs),
                    "execution_time_ms": 1.5,
                },
            },
        )

    def _view(self, request: httpx.Request, name: str) -> httpx.Response:
        if request.url.params.get("group") != "true":
            return httpx.Response(400, json={"error": "query_parse_error", "reason": "group required"})
        return httpx.Response(200, json={"rows": self.views.get(name, [])})

    def _get(self, doc_id: str) -> httpx.Response:
        doc = self.docs.get(doc_id)
        if doc is None:
            return httpx.Response(404, json={"error": "not_found", "reason": "missing"})
        return httpx.Response(200, json=doc)

    def _put(self, doc_id: str, body: dict[str, Any]) -> httpx.Response:
        current = self.docs.get(doc_id)
        if (current is None and "_rev" in body) or (
            current is not None and body.get("_rev") != current["_rev"]
        ):
            return httpx.Response(409, json={"error": "conflict", "reason": "Document update conflict."})
        generation = int(current["_rev"].split("-")[0]) + 1 if current else 1
        rev = f"{generation}-{uuid.uuid4().hex}"
        self.docs[doc_id] = {**body, "_id": doc_id, "_rev": rev}
        return httpx.Response(201, json={"ok": True, "id": doc_id, "rev": rev})

    def _delete(self, doc_id: str, rev: str | None) -> httpx.Response:
        current = self.docs.get(doc_id)
        if current is None:
            return httpx.Response(404, json={"error": "not_found", "reason": "deleted"})
        if rev != current["_rev"]:
            return httpx.Response(409, json={"error": "conflict", "reason": "Document update conflict."})
        del self.docs[doc_id]
        generation = int(rev.split("-")[0]) + 1
        return httpx.Response(200, json={"ok": True, "id": doc_id, "rev": f"{generation}-{uuid.uuid4().hex}"})


def matches(doc: dict[str, Any], selector: dict[str, Any]) -> bool:
    """Evaluate the selector subset produced by the gateway's queries."""
    for field, condition in selector.items():
        if field == "$and":
            if not all(matches(doc, part) for part in condition):
                return False
        elif field == "$or":
            if not any(matches(doc, part) for part in condition):
                return False
        elif not all(_apply(doc.get(field), op, arg) for op, arg in condition.items()):
            return False
    return True


def _apply(value: Any, op: str, arg: Any) -> bool:
    if op == "$eq":
        return value == arg
    if op == "$ne":
        return value != arg
    if op == "$exists":
        return (value is not None) == arg
    if op == "$in":
        return value in arg
    if op == "$regex":
        return isinstance(value, str) and re.search(arg, value) is not None
    if op == "$elemMatch":
        items = value if isinstance(value, list) else []
        if isinstance(arg, dict) and all(k.startswith("$") for k in arg):
            return any(all(_apply(item, o, a) for o, a in arg.items()) for item in items)
        return any(isinstance(item, dict) and matches(item, _as_selector(arg)) for item in items)
    raise AssertionError(f"operator not supported by the fake store: {op}")


def _as_selector(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v if isinstance(v, dict) else {"$eq": v} for k, v in fields.items()}


@pytest.fixture
def couch() -> FakeCouch:
    return FakeCouch()


@pytest.fixture
def archive_settings() -> ArchiveSettings:
    return ArchiveSettings(url=COUCH_URL, username="admin", password="admin")


@pytest_asyncio.fixture
async def archive_http(couch: FakeCouch):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(couch.handler), base_url=COUCH_URL
    ) as client:
        yield client


@pytest.fixture
def store(archive_settings: ArchiveSettings, archive_http: httpx.AsyncClient) -> ArchiveStore:
    return ArchiveStore(settings=archive_settings, http=archive_http)


@pytest.fixture
def gateway(store: ArchiveStore) -> ArchiveGateway:
    return ArchiveGateway(store=store, required_scope="archive")


@pytest.fixture
def aggregator(store: ArchiveStore) -> StatisticsAggregator:
    return StatisticsAggregator(store=store, required_scope="archive")

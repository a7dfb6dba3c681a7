"""
keg_gateway.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the directory, token and archive layers.
- Hide secrets from repr/logging (service bind password, store password).
- Offer a cached, frozen settings instance shared across concurrent requests.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MembershipQuery(BaseModel):
    """
    One directory search used to discover memberships of an identity.

    `anchor` is AND-combined with `filter`; `{uid}` and `{dn}` are replaced by the
    (filter-escaped) values of the identity being resolved.
    """

    model_config = ConfigDict(frozen=True)

    base: str
    filter: str = "(objectClass=*)"
    anchor: str = "(member={dn})"
    name_attribute: str = "cn"


class MemberAttributes(BaseModel):
    """Attribute names of a member entry, as listed in the crew directory."""

    model_config = ConfigDict(frozen=True)

    username: str = "uid"
    first_name: str = "givenName"
    last_name: str = "sn"
    common_name: str = "cn"
    joining: str = "mvlJoining"
    titles: str = "title"
    mail: str = "mail"
    mobile: str = "mobile"
    photo: str = "jpegPhoto"

    def listed(self) -> list[str]:
        return [
            self.username,
            self.first_name,
            self.last_name,
            self.common_name,
            self.joining,
            self.titles,
            self.mail,
            self.mobile,
        ]


class GroupAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "cn"
    name_plural: str = "mvlNamePlural"
    # Full DNs of the group's members.
    members: str = "member"


class DirectorySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    server_uri: str = "ldap://localhost:389"
    # `{uid}` is replaced by the RDN-escaped login name.
    bind_dn_template: str = "uid={uid},ou=Mitglieder,dc=mvl,dc=at"
    # Optional service account for membership searches; anonymous when unset.
    service_bind_dn: str | None = None
    service_password: str | None = Field(default=None, repr=False)
    display_name_attribute: str = "cn"

    members: MembershipQuery = MembershipQuery(
        base="ou=Mitglieder,dc=mvl,dc=at",
        filter="(objectClass=mvlMember)",
        anchor="(uid={uid})",
        name_attribute="title",
    )
    sutlers: MembershipQuery = MembershipQuery(
        base="ou=Marketenderinnen,ou=Mitglieder,dc=mvl,dc=at",
        filter="(objectClass=mvlMember)",
        anchor="(uid={uid})",
        name_attribute="title",
    )
    honorary: MembershipQuery = MembershipQuery(
        base="ou=Ehrenmitglieder,ou=Mitglieder,dc=mvl,dc=at",
        filter="(objectClass=mvlMember)",
        anchor="(uid={uid})",
        name_attribute="title",
    )
    registers: MembershipQuery = MembershipQuery(
        base="ou=Register,ou=Divisionen,dc=mvl,dc=at",
        filter="(objectClass=mvlGroup)",
    )
    executives: MembershipQuery = MembershipQuery(
        base="ou=Exekutive,ou=Divisionen,dc=mvl,dc=at",
        filter="(objectClass=mvlGroup)",
    )

    # First entry has the highest precedence.
    title_ordering: tuple[str, ...] = (
        "Obmann",
        "Kapellmeister",
        "Kassier",
        "Stabführer",
        "Archivar",
        "Jugendreferent",
        "Medienreferent",
        "Ehrenobmann",
        "Ehrenkapellmeister",
    )
    # Executive group name -> scope name.
    executive_mapping: dict[str, str] = Field(default_factory=lambda: {"Archivare": "archive"})

    member_attributes: MemberAttributes = MemberAttributes()
    group_attributes: GroupAttributes = GroupAttributes()

    timeout_seconds: float = 10.0


class ArchiveEndpoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    authentication: str = "/_session"
    all_scores: str = "/archive/_partition/scores/_all_docs"
    find_scores: str = "/archive/_partition/scores/_find"
    get_score: str = "/archive"
    put_score: str = "/archive"
    delete_score: str = "/archive"
    genres_statistic: str = "/archive/_design/score/_view/genres-count"
    composers_statistic: str = "/archive/_design/score/_view/composers-count"
    arrangers_statistic: str = "/archive/_design/score/_view/arrangers-count"
    publishers_statistic: str = "/archive/_design/score/_view/publishers-count"
    locations_statistic: str = "/archive/_design/score/_view/locations-count"
    books_statistic: str = "/archive/_design/score/_view/books-count"


class ArchiveSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = "http://127.0.0.1:5984"
    username: str = "admin"
    password: str = Field(default="admin", repr=False)
    partition: str = "scores"
    endpoints: ArchiveEndpoints = ArchiveEndpoints()
    timeout_seconds: float = 10.0


class TokenSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    issuer: str = "keg-gateway"
    algorithm: Literal["RS256", "RS384", "RS512"] = "RS512"
    # Access tokens carry a scope snapshot; keep this short (no revocation list exists).
    access_ttl_seconds: int = Field(default=15 * 60, ge=0)
    renewal_ttl_seconds: int = Field(default=12 * 60 * 60, ge=0)
    private_key_path: str | None = "keys/private.pem"
    public_key_path: str = "keys/public.pem"
    required_scope: str = "archive"


class Settings(BaseSettings):
    """
    Process-wide, read-only configuration:
    - Strict env-driven configuration (KEG_ prefix, `__` for nested sections)
    - Defaults mirror a local development deployment
    - Frozen after load so request handlers can share it without locking
    """

    model_config = SettingsConfigDict(
        env_prefix="KEG_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "keg-gateway"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 1926

    directory: DirectorySettings = DirectorySettings()
    archive: ArchiveSettings = ArchiveSettings()
    token: TokenSettings = TokenSettings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Directory search bases and endpoint paths default to the association's layout;
# every value can be overridden, e.g. KEG_DIRECTORY__SERVER_URI or
# KEG_TOKEN__ACCESS_TTL_SECONDS.

"""
keg_gateway.directory.models

Directory domain models.

Responsibilities:
- Name the five membership categories searched for every identity.
- Hold the complete (all five categories) membership result of one resolution.
- Describe the crew listing: registers with their musicians, sutlers and honorary members.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from keg_gateway.settings import DirectorySettings, MembershipQuery


class MembershipCategory(str, enum.Enum):
    MEMBERS = "members"
    SUTLERS = "sutlers"
    HONORARY = "honorary"
    REGISTERS = "registers"
    EXECUTIVES = "executives"

    def query(self, settings: DirectorySettings) -> MembershipQuery:
        return getattr(settings, self.value)


@dataclass(frozen=True, slots=True)
class MembershipResult:
    """
    Names found per category. Categories without hits map to an empty tuple.
    """

    by_category: Mapping[MembershipCategory, tuple[str, ...]] = field(default_factory=dict)

    def names(self, category: MembershipCategory) -> tuple[str, ...]:
        return tuple(self.by_category.get(category, ()))

    def all_names(self) -> Iterator[str]:
        for category in MembershipCategory:
            yield from self.names(category)

    @classmethod
    def of(cls, **names: list[str] | tuple[str, ...]) -> MembershipResult:
        """Build a result from keyword arguments named after the categories."""
        return cls({MembershipCategory(key): tuple(value) for key, value in names.items()})


@dataclass(frozen=True, slots=True)
class Member:
    username: str
    dn: str
    first_name: str = ""
    last_name: str = ""
    common_name: str = ""
    # Year of joining; 0 when the entry carries none.
    joining: int = 0
    titles: tuple[str, ...] = ()
    mail: tuple[str, ...] = ()
    mobile: tuple[str, ...] = ()

    def sort_key(self) -> tuple[int, str, str]:
        return (self.joining, self.last_name, self.first_name)


@dataclass(frozen=True, slots=True)
class Register:
    name: str
    name_plural: str
    members: tuple[Member, ...] = ()


@dataclass(frozen=True, slots=True)
class Crew:
    """
    Everyone listed by the association.

    Musicians are grouped by register (registers by name); within every group members
    are ordered by joining year, last name and first name.
    """

    musicians: tuple[Register, ...] = ()
    sutlers: tuple[Member, ...] = ()
    honorary_members: tuple[Member, ...] = ()

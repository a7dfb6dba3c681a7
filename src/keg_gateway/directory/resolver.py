"""
keg_gateway.directory.resolver

Reduce raw directory memberships to ordered roles and a scope set.

Pure and total: no I/O, and no role or group name can make resolution fail.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import NamedTuple

from keg_gateway.directory.models import MembershipCategory, MembershipResult


class Resolution(NamedTuple):
    roles: tuple[str, ...]
    scopes: frozenset[str]


def order_roles(names: set[str] | frozenset[str], title_ordering: Sequence[str]) -> tuple[str, ...]:
    """
    Configured titles first, in configured order; everything else afterwards by name.
    """

    position: dict[str, int] = {}
    for index, title in enumerate(title_ordering):
        position.setdefault(title, index)
    return tuple(sorted(names, key=lambda name: (position.get(name, math.inf), name)))


def map_scopes(executive_groups: Sequence[str], executive_mapping: Mapping[str, str]) -> frozenset[str]:
    # Directory group names compare case-insensitively; unmapped groups grant nothing.
    mapping = {group.casefold(): scope for group, scope in executive_mapping.items()}
    return frozenset(
        mapping[group.casefold()] for group in executive_groups if group.casefold() in mapping
    )


def resolve(
    memberships: MembershipResult,
    title_ordering: Sequence[str],
    executive_mapping: Mapping[str, str],
) -> Resolution:
    roles = order_roles(set(memberships.all_names()), title_ordering)
    scopes = map_scopes(memberships.names(MembershipCategory.EXECUTIVES), executive_mapping)
    return Resolution(roles=roles, scopes=scopes)

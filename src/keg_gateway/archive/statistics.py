"""
keg_gateway.archive.statistics

Aggregate counts over the score archive.

Each dimension is served by one precomputed, grouped store view; this module only
selects the view, checks the caller's scope and reshapes the rows.
"""

from __future__ import annotations

import enum

from keg_gateway.archive.store import ArchiveStore
from keg_gateway.auth.models import TokenClaims
from keg_gateway.auth.scopes import require_scope
from keg_gateway.errors import ArchiveUnavailableError
from keg_gateway.observability.logging import get_logger
from keg_gateway.settings import ArchiveEndpoints

log = get_logger(__name__)


class Dimension(str, enum.Enum):
    GENRE = "genre"
    COMPOSER = "composer"
    ARRANGER = "arranger"
    PUBLISHER = "publisher"
    LOCATION = "location"
    BOOK = "book"

    def endpoint(self, endpoints: ArchiveEndpoints) -> str:
        return getattr(endpoints, f"{self.value}s_statistic")


class StatisticsAggregator:
    def __init__(self, *, store: ArchiveStore, required_scope: str) -> None:
        self._store = store
        self._required_scope = required_scope

    async def aggregate(self, claims: TokenClaims | None, dimension: Dimension) -> dict[str, int]:
        require_scope(claims, self._required_scope)
        settings = self._store.settings
        body = await self._store.request(
            "GET",
            dimension.endpoint(settings.endpoints),
            params={"group": "true", "partition": settings.partition},
        )
        counts = view_counts(body)
        log.debug("statistic_aggregated", dimension=dimension.value, keys=len(counts))
        return counts


def view_counts(body: object) -> dict[str, int]:
    """Reshape grouped view rows (`{"rows": [{"key": k, "value": n}, ...]}`)."""
    if not isinstance(body, dict) or not isinstance(body.get("rows"), list):
        raise ArchiveUnavailableError("statistics view returned an unexpected body")

    counts: dict[str, int] = {}
    for row in body["rows"]:
        try:
            key = row.get("key")
            value = int(row.get("value") or 0)
        except (AttributeError, TypeError, ValueError) as e:
            raise ArchiveUnavailableError("statistics view returned an unexpected row") from e
        # Documents without a value for the dimension are grouped under null.
        name = "" if key is None else str(key)
        counts[name] = counts.get(name, 0) + value
    return counts

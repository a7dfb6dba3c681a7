"""
keg_gateway.archive.query

Structured archive queries and their Mango translation.

Responsibilities:
- Model a conjunctive predicate over document fields (`Condition`, `Predicate`).
- Translate predicates verbatim into the store's find request body.
- Build predicates for the fuzzy score search (`ScoreSearch`).

Operators are restricted to a fixed set; no free-form selector reaches the
store from the API.
"""

from __future__ import annotations

import enum
from collections import Counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from keg_gateway.archive.fuzzy import fuzzy_regex


class Operator(str, enum.Enum):
    EQ = "$eq"
    NE = "$ne"
    LT = "$lt"
    LTE = "$lte"
    GT = "$gt"
    GTE = "$gte"
    IN = "$in"
    NIN = "$nin"
    REGEX = "$regex"
    EXISTS = "$exists"
    ELEM_MATCH = "$elemMatch"
    ALL = "$all"
    SIZE = "$size"


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(min_length=1)
    operator: Operator
    value: Any = None

    def to_selector(self) -> dict[str, Any]:
        return {self.field: {self.operator.value: self.value}}


class SortField(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(min_length=1)
    ascending: bool = True


class Predicate(BaseModel):
    """
    Conjunction of conditions plus paging.

    `any_of` is an optional disjunctive group; when present at least one of its
    conditions must hold in addition to every entry of `conditions`.
    """

    model_config = ConfigDict(frozen=True)

    conditions: tuple[Condition, ...] = ()
    any_of: tuple[Condition, ...] = ()
    sort: tuple[SortField, ...] = ()
    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)
    bookmark: str | None = None

    def selector(self) -> dict[str, Any]:
        selector = _conjunction(self.conditions)
        if self.any_of:
            selector["$or"] = [condition.to_selector() for condition in self.any_of]
        return selector

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {"selector": self.selector(), "execution_stats": True}
        if self.sort:
            query["sort"] = [{s.field: "asc" if s.ascending else "desc"} for s in self.sort]
        if self.limit is not None:
            query["limit"] = self.limit
        if self.skip is not None:
            query["skip"] = self.skip
        if self.bookmark:
            query["bookmark"] = self.bookmark
        return query


def _conjunction(conditions: tuple[Condition, ...]) -> dict[str, Any]:
    # Same field and operator twice cannot share one object; fall back to $and.
    repeated = Counter((c.field, c.operator) for c in conditions)
    if any(count > 1 for count in repeated.values()):
        return {"$and": [condition.to_selector() for condition in conditions]}

    selector: dict[str, dict[str, Any]] = {}
    for condition in conditions:
        selector.setdefault(condition.field, {})[condition.operator.value] = condition.value
    return selector


class ScoreField(str, enum.Enum):
    TITLE = "title"
    GENRES = "genres"
    SUBTITLES = "subtitles"
    ARRANGERS = "arrangers"
    COMPOSERS = "composers"
    ANNOTATION = "annotation"
    ALIAS = "alias"
    PUBLISHER = "publisher"
    LOCATION = "location"
    GRADE = "grade"

    @property
    def is_array(self) -> bool:
        return self in _ARRAY_FIELDS


_ARRAY_FIELDS = frozenset(
    {
        ScoreField.GENRES,
        ScoreField.SUBTITLES,
        ScoreField.ARRANGERS,
        ScoreField.COMPOSERS,
        ScoreField.ALIAS,
    }
)

DEFAULT_SEARCH_FIELDS: tuple[ScoreField, ...] = (
    ScoreField.TITLE,
    ScoreField.SUBTITLES,
    ScoreField.ALIAS,
    ScoreField.COMPOSERS,
    ScoreField.ARRANGERS,
)


class ScoreSearch(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str | None = None
    # Treat `term` as a regular expression instead of fuzzy text.
    regex: bool = False
    fields: tuple[ScoreField, ...] = DEFAULT_SEARCH_FIELDS
    book: str | None = None
    location: str | None = None
    sort: ScoreField | None = None
    ascending: bool = True
    limit: int | None = Field(default=None, ge=0)
    bookmark: str | None = None

    def pattern(self) -> str | None:
        if not self.term:
            return None
        if self.regex:
            return self.term
        return fuzzy_regex(self.term) or None

    def to_predicate(self) -> Predicate:
        conditions: list[Condition] = []
        any_of: list[Condition] = []

        pattern = self.pattern()
        if pattern:
            for field in dict.fromkeys(self.fields):
                any_of.append(_regex_condition(field, pattern))
            if len(any_of) == 1:
                conditions.extend(any_of)
                any_of = []
        if self.book:
            conditions.append(
                Condition(field="pages", operator=Operator.ELEM_MATCH, value={"book": self.book})
            )
        if self.location:
            conditions.append(Condition(field="location", operator=Operator.EQ, value=self.location))
        # Sorting requires the sort field to be present in the selector.
        if self.sort is not None and not any(c.field == self.sort.value for c in conditions):
            conditions.append(Condition(field=self.sort.value, operator=Operator.EXISTS, value=True))

        return Predicate(
            conditions=tuple(conditions),
            any_of=tuple(any_of),
            sort=(SortField(field=self.sort.value, ascending=self.ascending),) if self.sort else (),
            limit=self.limit,
            bookmark=self.bookmark,
        )


def _regex_condition(field: ScoreField, pattern: str) -> Condition:
    # Case folding is part of the fuzzy pattern; raw patterns get (?i) as well.
    expression = f"(?i){pattern}"
    if field.is_array:
        return Condition(
            field=field.value, operator=Operator.ELEM_MATCH, value={"$regex": expression}
        )
    return Condition(field=field.value, operator=Operator.REGEX, value=expression)

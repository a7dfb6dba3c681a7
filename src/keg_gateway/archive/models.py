"""
keg_gateway.archive.models

Archive document and store-response models.

Responsibilities:
- Define the score document stored in the `scores` partition.
- Decode the store's listing, find and write responses into stable shapes.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

D = TypeVar("D")


class PageNumber(BaseModel):
    prefix: str | None = None
    number: int | None = None
    suffix: str | None = None


class Page(BaseModel):
    # Title of the book the score is filed in.
    book: str
    begin: PageNumber = Field(default_factory=PageNumber)
    # The score ends on `begin` when absent.
    end: PageNumber | None = None


class Score(BaseModel):
    """
    One archived piece.

    Unknown fields are kept as free-form metadata and written back unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    couch_id: str | None = Field(default=None, alias="_id")
    couch_revision: str | None = Field(default=None, alias="_rev")
    title: str = ""
    genres: list[str] = Field(default_factory=list)
    composers: list[str] = Field(default_factory=list)
    arrangers: list[str] = Field(default_factory=list)
    publisher: str | None = None
    grade: str | None = None
    alias: list[str] = Field(default_factory=list)
    subtitles: list[str] = Field(default_factory=list)
    annotation: str | None = None
    location: str | None = None
    conductor_score: bool = False
    pages: list[Page] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        document = self.model_dump(by_alias=True, mode="json", exclude={"pages"})
        # Unset optional fields are omitted; explicit nulls in free-form metadata stay.
        for name, field in type(self).model_fields.items():
            key = field.alias or name
            if key in document and document[key] is None:
                del document[key]
        document["pages"] = [page.model_dump(mode="json", exclude_none=True) for page in self.pages]
        return document

    def page_in(self, book: str) -> Page | None:
        folded = book.casefold()
        return next((p for p in self.pages if p.book.casefold() == folded), None)


class PaginationRow(BaseModel, Generic[D]):
    id: str
    key: str
    doc: D | None = None


class Pagination(BaseModel, Generic[D]):
    total_rows: int = 0
    offset: int = 0
    rows: list[PaginationRow[D]] = Field(default_factory=list)


class ExecutionStats(BaseModel):
    total_keys_examined: int = 0
    total_docs_examined: int = 0
    total_quorum_docs_examined: int = 0
    results_returned: int = 0
    execution_time_ms: float = 0.0


class FindResponse(BaseModel, Generic[D]):
    docs: list[D] = Field(default_factory=list)
    bookmark: str | None = None
    execution_stats: ExecutionStats | None = None
    warning: str | None = None


class OperationResponse(BaseModel):
    id: str
    ok: bool = True
    rev: str

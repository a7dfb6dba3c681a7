"""
keg_gateway.archive.gateway

Scope-guarded operations on the score archive.

Responsibilities:
- Enforce the archive scope before any store request is made.
- Keep every document inside the configured partition (`scores:` ids).
- Decode store responses into typed models.

Every public coroutine takes the caller's verified `TokenClaims` first.
"""

from __future__ import annotations

import uuid
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from keg_gateway.archive.models import (
    FindResponse,
    OperationResponse,
    Page,
    Pagination,
    Score,
)
from keg_gateway.archive.query import Condition, Operator, Predicate, ScoreSearch
from keg_gateway.archive.store import ArchiveStore
from keg_gateway.auth.models import TokenClaims
from keg_gateway.auth.scopes import require_scope
from keg_gateway.errors import ArchiveUnavailableError, InvalidDocumentError
from keg_gateway.observability.logging import get_logger

log = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
BOOK_CONTENT_LIMIT = 0xFFFF


class ArchiveGateway:
    def __init__(self, *, store: ArchiveStore, required_scope: str) -> None:
        self._store = store
        self._endpoints = store.settings.endpoints
        self._partition = store.settings.partition
        self._required_scope = required_scope

    def _authorize(self, claims: TokenClaims | None, operation: str) -> TokenClaims:
        verified = require_scope(claims, self._required_scope)
        log.debug("archive_operation", operation=operation, sub=verified.subject)
        return verified

    # --- Reads ------------------------------------------------------------------

    async def list(
        self, claims: TokenClaims | None, *, limit: int = DEFAULT_PAGE_SIZE, skip: int = 0
    ) -> Pagination[Score]:
        self._authorize(claims, "list")
        if limit < 0 or skip < 0:
            raise InvalidDocumentError("limit and skip must not be negative")
        body = await self._store.request(
            "GET",
            self._endpoints.all_scores,
            params={"include_docs": "true", "limit": str(limit), "skip": str(skip)},
        )
        return _decode(Pagination[Score], body)

    async def find(self, claims: TokenClaims | None, predicate: Predicate) -> FindResponse[Score]:
        self._authorize(claims, "find")
        body = await self._store.request("POST", self._endpoints.find_scores, json=predicate.to_query())
        return _decode(FindResponse[Score], body)

    async def search(self, claims: TokenClaims | None, search: ScoreSearch) -> FindResponse[Score]:
        self._authorize(claims, "search")
        return await self.find(claims, search.to_predicate())

    async def get(self, claims: TokenClaims | None, doc_id: str) -> Score:
        self._authorize(claims, "get")
        self._check_partition(doc_id)
        body = await self._store.request("GET", self._document_path(self._endpoints.get_score, doc_id))
        return _decode(Score, body)

    async def book_content(self, claims: TokenClaims | None, book: str) -> list[Score]:
        """All scores filed in `book`, in page order."""
        self._authorize(claims, "book_content")
        predicate = Predicate(
            conditions=(
                Condition(field="pages", operator=Operator.ELEM_MATCH, value={"book": book}),
            ),
            limit=BOOK_CONTENT_LIMIT,
        )
        found = await self.find(claims, predicate)
        return sort_by_book_page(found.docs, book)

    # --- Writes -----------------------------------------------------------------

    async def put(
        self,
        claims: TokenClaims | None,
        document: Score | dict[str, Any],
        *,
        doc_id: str | None = None,
        expected_revision: str | None = None,
    ) -> Score:
        """
        Create or update a score.

        Explicit `doc_id`/`expected_revision` take precedence over `_id`/`_rev`
        carried by the document:
        - no id: create under a generated `<partition>:<uuid4>` id
        - id only: create at that id (the store reports a conflict if it exists)
        - id and revision: update that revision
        """

        self._authorize(claims, "put")
        score = document if isinstance(document, Score) else _decode(Score, document, invalid=True)

        target_id = doc_id or score.couch_id
        revision = expected_revision or score.couch_revision
        if target_id is None and revision is not None:
            raise InvalidDocumentError("a revision was given without a document id")
        if target_id is None:
            target_id = self.new_document_id()
        else:
            self._check_partition(target_id)

        body = score.to_document()
        body["_id"] = target_id
        body.pop("_rev", None)
        if revision is not None:
            body["_rev"] = revision

        result = await self._store.request(
            "PUT", self._document_path(self._endpoints.put_score, target_id), json=body
        )
        response = _decode(OperationResponse, result)
        log.info("score_saved", id=response.id, rev=response.rev, created=revision is None)
        return score.model_copy(update={"couch_id": response.id, "couch_revision": response.rev})

    async def delete(
        self, claims: TokenClaims | None, doc_id: str, expected_revision: str
    ) -> OperationResponse:
        self._authorize(claims, "delete")
        self._check_partition(doc_id)
        if not expected_revision:
            raise InvalidDocumentError("deleting a document requires its current revision")
        result = await self._store.request(
            "DELETE",
            self._document_path(self._endpoints.delete_score, doc_id),
            params={"rev": expected_revision},
        )
        response = _decode(OperationResponse, result)
        log.info("score_deleted", id=response.id, rev=response.rev)
        return response

    # --- Helpers ----------------------------------------------------------------

    def new_document_id(self) -> str:
        return f"{self._partition}:{uuid.uuid4()}"

    def _check_partition(self, doc_id: str) -> None:
        prefix = f"{self._partition}:"
        if not doc_id.startswith(prefix) or len(doc_id) == len(prefix):
            raise InvalidDocumentError(f"document id {doc_id!r} is not in the {self._partition!r} partition")

    @staticmethod
    def _document_path(base: str, doc_id: str) -> str:
        return f"{base.rstrip('/')}/{quote(doc_id, safe=':')}"


def _decode(model: Any, body: Any, *, invalid: bool = False) -> Any:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        # Client input is invalid; a bad store body means the store misbehaved.
        if invalid:
            raise InvalidDocumentError(f"invalid score document: {e.error_count()} error(s)") from e
        raise ArchiveUnavailableError("document store returned an unexpected body") from e


def sort_by_book_page(scores: list[Score], book: str) -> list[Score]:
    """
    Order scores by their page in `book`.

    Scores without a page in the book come first. Pages order by prefix (prefixed
    pages before plain ones), then number, then suffix (suffixed pages before
    plain ones).
    """

    def key(score: Score) -> tuple[Any, ...]:
        page: Page | None = score.page_in(book)
        if page is None:
            return (0,)
        begin = page.begin
        prefix = (0, begin.prefix) if begin.prefix is not None else (1, "")
        number = (1, begin.number) if begin.number is not None else (0, 0)
        suffix = (0, begin.suffix) if begin.suffix is not None else (1, "")
        return (1, prefix, number, suffix)

    return sorted(scores, key=key)

"""
keg_gateway.api.routers.scores

Score archive endpoints.

Responsibilities:
- Map HTTP requests onto `ArchiveGateway` operations.
- Leave scope checks and partition rules to the gateway.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from keg_gateway.api.deps import archive_gateway
from keg_gateway.archive.gateway import DEFAULT_PAGE_SIZE, ArchiveGateway
from keg_gateway.archive.models import FindResponse, OperationResponse, Pagination, Score
from keg_gateway.archive.query import Predicate, ScoreSearch
from keg_gateway.auth.deps import get_claims
from keg_gateway.auth.models import TokenClaims

router = APIRouter(prefix="/v1/archive", tags=["archive"])


@router.get("/scores", response_model=Pagination[Score])
async def list_scores(
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=0, le=1000),
    skip: int = Query(default=0, ge=0),
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> Pagination[Score]:
    return await gateway.list(claims, limit=limit, skip=skip)


@router.post("/scores/find", response_model=FindResponse[Score])
async def find_scores(
    predicate: Predicate,
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> FindResponse[Score]:
    return await gateway.find(claims, predicate)


@router.post("/scores/search", response_model=FindResponse[Score])
async def search_scores(
    search: ScoreSearch,
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> FindResponse[Score]:
    return await gateway.search(claims, search)


@router.get("/scores/{doc_id}", response_model=Score)
async def get_score(
    doc_id: str,
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> Score:
    return await gateway.get(claims, doc_id)


@router.put("/scores", response_model=Score)
async def put_score(
    score: Score,
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> Score:
    # `_id`/`_rev` in the body select create or update.
    return await gateway.put(claims, score)


@router.delete("/scores/{doc_id}", response_model=OperationResponse)
async def delete_score(
    doc_id: str,
    rev: str = Query(min_length=1),
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> OperationResponse:
    return await gateway.delete(claims, doc_id, rev)


@router.get("/books/{book}", response_model=list[Score])
async def book_content(
    book: str,
    claims: TokenClaims = Depends(get_claims),
    gateway: ArchiveGateway = Depends(archive_gateway),
) -> list[Score]:
    return await gateway.book_content(claims, book)

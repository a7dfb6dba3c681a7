"""
keg_gateway.api.routers.members

Crew directory endpoints.

Responsibilities:
- List the crew (registers with musicians, sutlers, honorary members) for signed-in callers.
- Serve a member's profile photo as JPEG.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from keg_gateway.api.deps import directory_client
from keg_gateway.auth.deps import get_claims
from keg_gateway.directory.client import DirectoryClient
from keg_gateway.directory.models import Crew, Member, Register
from keg_gateway.errors import MemberNotFoundError

router = APIRouter(prefix="/v1/members", tags=["members"])


class MemberResponse(BaseModel):
    username: str
    first_name: str
    last_name: str
    common_name: str
    joining: int
    titles: list[str]
    mail: list[str]
    mobile: list[str]

    @classmethod
    def from_member(cls, member: Member) -> MemberResponse:
        return cls(
            username=member.username,
            first_name=member.first_name,
            last_name=member.last_name,
            common_name=member.common_name,
            joining=member.joining,
            titles=list(member.titles),
            mail=list(member.mail),
            mobile=list(member.mobile),
        )


class RegisterResponse(BaseModel):
    name: str
    name_plural: str
    members: list[MemberResponse]

    @classmethod
    def from_register(cls, register: Register) -> RegisterResponse:
        return cls(
            name=register.name,
            name_plural=register.name_plural,
            members=[MemberResponse.from_member(m) for m in register.members],
        )


class CrewResponse(BaseModel):
    musicians: list[RegisterResponse]
    sutlers: list[MemberResponse]
    honorary_members: list[MemberResponse]

    @classmethod
    def from_crew(cls, crew: Crew) -> CrewResponse:
        return cls(
            musicians=[RegisterResponse.from_register(r) for r in crew.musicians],
            sutlers=[MemberResponse.from_member(m) for m in crew.sutlers],
            honorary_members=[MemberResponse.from_member(m) for m in crew.honorary_members],
        )


# Contact data is listed, so a valid access token is required.
@router.get("", response_model=CrewResponse, dependencies=[Depends(get_claims)])
async def crew(directory: DirectoryClient = Depends(directory_client)) -> CrewResponse:
    return CrewResponse.from_crew(await directory.list_crew())


@router.get("/{username}/photo", response_class=Response)
async def photo(username: str, directory: DirectoryClient = Depends(directory_client)) -> Response:
    content = await directory.member_photo(username)
    if content is None:
        raise MemberNotFoundError(f"no photo for member {username!r}")
    return Response(content=content, media_type="image/jpeg")

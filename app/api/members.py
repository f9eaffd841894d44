"""
app/api/members.py

Purpose: Member endpoints

- Member resolution (target of the URL encoded in each QR code)
- Operator push of the functional menu
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_flow_context, require_admin_key
from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.core.logging import get_logger
from app.flow.context import FlowContext
from app.flow.handlers.prompts import member_menu
from app.schemas.response import MemberPublicResponse

logger = get_logger(__name__)

router = APIRouter()
admin_router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.get("/member/{member_id}", response_model=MemberPublicResponse)
async def resolve_member(member_id: int, ctx: FlowContext = Depends(get_flow_context)):
    """
    Public identity for in-person verification (name, card number, photo).
    """
    member = await ctx.store.get_by_id(member_id)
    if member is None:
        raise ResourceNotFoundError(f"Member {member_id} not found")

    return MemberPublicResponse(
        member_id=member.member_id,
        display_name=member.display_name,
        card_number=member.card_number,
        photo_url=member.photo_url,
        registered=member.is_registered,
    )


@admin_router.post("/members/{member_id}/menu")
async def push_member_menu(member_id: int, ctx: FlowContext = Depends(get_flow_context)):
    """
    Pushes the functional menu to a registered member.
    """
    member = await ctx.store.get_by_id(member_id)
    if member is None:
        raise ResourceNotFoundError(f"Member {member_id} not found")
    if not member.is_registered:
        raise ValidationError("Member has not completed registration", details={"member_id": member_id})

    await ctx.gateway.push(member.line_user_id, [member_menu(member, ctx.options)])
    logger.info(f"Menu pushed to member {member_id}")
    return {"status": "success", "member_id": member_id}

"""
app/flow/handlers/menu.py

Handles: functional menu postbacks

- My QR: show the stored QR code image
- My Info: show the member info card
- Edit Info: open the edit menu
- Plain messages from a registered member get the menu back
"""

from typing import Any, Dict, List

from app.flow.context import FlowOptions
from app.flow.effects import Transition
from app.flow.handlers.prompts import member_menu, move, stay, step_prompt
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member
from app.schemas.webhook import InboundEvent
from utils.constants import (
    EDIT_NOT_AVAILABLE_MESSAGE,
    INFO_MISSING_PHONE_MESSAGE,
    MENU_HINT_MESSAGE,
    NOT_REGISTERED_MESSAGE,
    QR_NOT_READY_MESSAGE,
)
from utils.line_utils import (
    create_edit_menu_message,
    create_image_message,
    create_info_card,
    create_text_message,
)
from utils.time_utils import format_date


def _not_registered(member: Member, options: FlowOptions, notice: str) -> Transition:
    return stay(create_text_message(notice), *step_prompt(member, options))


def info_card(member: Member) -> Dict[str, Any]:
    return create_info_card(
        member_id=member.member_id,
        display_name=member.display_name,
        phone=member.phone,
        card_number=member.card_number,
        joined=format_date(member.created_at),
        photo_url=member.photo_url,
    )


def handle_my_qr(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if not member.is_registered:
        return _not_registered(member, options, NOT_REGISTERED_MESSAGE)

    if not member.qr_code_url:
        return stay(create_text_message(QR_NOT_READY_MESSAGE))

    return stay(create_image_message(member.qr_code_url))


def handle_my_info(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    """
    Info card for registered members. Legacy records without a phone are
    sent straight into the phone edit step.
    """
    if not member.is_registered:
        return _not_registered(member, options, NOT_REGISTERED_MESSAGE)

    if not member.phone:
        return move(
            MemberState.of(RegistrationStep.EDIT_PHONE),
            info_card(member),
            create_text_message(INFO_MISSING_PHONE_MESSAGE),
        )

    return stay(info_card(member))


def handle_edit_info(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if not member.is_registered:
        return _not_registered(member, options, EDIT_NOT_AVAILABLE_MESSAGE)

    return move(MemberState.of(RegistrationStep.EDIT_MENU), create_edit_menu_message())


def handle_registered(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    messages: List[Dict[str, Any]] = [
        create_text_message(MENU_HINT_MESSAGE),
        member_menu(member, options),
    ]
    return stay(*messages)

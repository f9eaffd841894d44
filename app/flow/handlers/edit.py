"""
app/flow/handlers/edit.py

Handles: editing a registered member's data

- Edit menu: pick phone / card / photo by keyword or button
- New phone (with yes/no confirmation when replacing an existing one)
- New card number, new photo
- Cancel from any edit step
"""

from app.core.logging import get_logger
from app.flow.context import FlowOptions
from app.flow.effects import Reply, Transition, UpdateMember, UploadPhoto
from app.flow.handlers.prompts import (
    confirm_phone_message,
    finish,
    move,
    render_menu,
    stay,
    step_prompt,
)
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member
from app.schemas.webhook import EventKind, InboundEvent
from utils.constants import (
    CARD_UPDATED_MESSAGE,
    CONFIRM_PENDING_REMINDER,
    CONFIRM_PHONE_CANCELLED_MESSAGE,
    EDIT_CANCELLED_MESSAGE,
    EDIT_MENU_UNKNOWN_MESSAGE,
    EDIT_NOT_AVAILABLE_MESSAGE,
    INVALID_CARD_MESSAGE,
    INVALID_PHONE_MESSAGE,
    NOTHING_TO_CONFIRM_MESSAGE,
    PHONE_UNCHANGED_MESSAGE,
    PHONE_UPDATED_MESSAGE,
    PHOTO_UPDATED_MESSAGE,
)
from utils.line_utils import create_edit_menu_message, create_text_message
from utils.validation_utils import (
    is_cancel_command,
    mask_phone,
    match_edit_field,
    validate_card_number,
    validate_phone_number,
)

logger = get_logger(__name__)

# Member field -> edit step
FIELD_STEPS = {
    "phone": RegistrationStep.EDIT_PHONE,
    "card_number": RegistrationStep.EDIT_CARD,
    "photo_url": RegistrationStep.EDIT_PHOTO,
}


def start_edit(member: Member, step: RegistrationStep, options: FlowOptions) -> Transition:
    """Enter an edit step and prompt for the new value."""
    state = MemberState.of(step)
    return move(state, *step_prompt(member.apply({"state": state}), options))


def handle_edit_field_postback(field: str):
    """Builds the handler for the edit_phone / edit_card / edit_photo buttons."""
    def handler(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
        if not member.is_registered:
            return stay(create_text_message(EDIT_NOT_AVAILABLE_MESSAGE), *step_prompt(member, options))
        return start_edit(member, FIELD_STEPS[field], options)
    return handler


def handle_cancel(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    return finish(options, create_text_message(EDIT_CANCELLED_MESSAGE))


def handle_edit_menu(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.TEXT:
        return stay(create_edit_menu_message())

    field = match_edit_field(event.text)
    if field is None:
        return stay(create_edit_menu_message(EDIT_MENU_UNKNOWN_MESSAGE))

    return start_edit(member, FIELD_STEPS[field], options)


def handle_edit_phone(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    """
    New phone number.

    Replacing an existing number goes through a yes/no confirmation
    (the number waits in pending_phone); a first number is applied directly.
    """
    if event.kind != EventKind.TEXT:
        return stay(*step_prompt(member, options))

    phone = event.text
    if not validate_phone_number(phone):
        return stay(create_text_message(INVALID_PHONE_MESSAGE))

    if phone == member.phone:
        return finish(options, create_text_message(PHONE_UNCHANGED_MESSAGE.format(phone=phone)))

    if member.phone and options.confirm_phone_change:
        logger.info(f"Phone change awaiting confirmation: {mask_phone(member.phone)} -> {mask_phone(phone)}")
        return move(
            MemberState(RegistrationStep.REGISTERED, pending_phone=phone),
            confirm_phone_message(member.phone, phone),
        )

    return finish(options, create_text_message(PHONE_UPDATED_MESSAGE.format(phone=phone)), phone=phone)


def handle_edit_card(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.TEXT:
        return stay(*step_prompt(member, options))

    card_number = event.text
    if not validate_card_number(card_number):
        return stay(create_text_message(INVALID_CARD_MESSAGE))

    return finish(
        options,
        create_text_message(CARD_UPDATED_MESSAGE.format(card_number=card_number)),
        card_number=card_number,
    )


def handle_edit_photo(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.IMAGE:
        return stay(*step_prompt(member, options))

    # QR code encodes the member URL, not the photo; nothing to reissue
    return Transition([
        UploadPhoto(media_id=event.media_id),
        UpdateMember({"state": MemberState.of(RegistrationStep.REGISTERED)}),
        Reply(render=render_menu(options, create_text_message(PHOTO_UPDATED_MESSAGE))),
    ])


def handle_confirm_yes(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    new_phone = member.state.pending_phone
    if new_phone is None:
        return stay(create_text_message(NOTHING_TO_CONFIRM_MESSAGE))

    logger.info(f"Phone change confirmed: {mask_phone(new_phone)}")
    return finish(options, create_text_message(PHONE_UPDATED_MESSAGE.format(phone=new_phone)), phone=new_phone)


def handle_confirm_no(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if not member.state.confirm_pending:
        return stay(create_text_message(NOTHING_TO_CONFIRM_MESSAGE))

    return finish(options, create_text_message(CONFIRM_PHONE_CANCELLED_MESSAGE.format(phone=member.phone)))


def handle_confirm_pending(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    """
    Text or image while a phone change awaits yes/no: "取消" rejects it,
    anything else repeats the question.
    """
    if is_cancel(event):
        return handle_confirm_no(member, event, options)

    return stay(
        create_text_message(CONFIRM_PENDING_REMINDER),
        confirm_phone_message(member.phone, member.state.pending_phone),
    )


def is_cancel(event: InboundEvent) -> bool:
    return event.kind == EventKind.TEXT and is_cancel_command(event.text)

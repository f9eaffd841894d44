"""
app/flow/handlers/onboarding.py

Handles: STEPS 1-3 of the initial registration path

- AWAITING_PHONE: validate phone, move on to card number
- AWAITING_CARD: validate card number, move on to photo (or finish when
  the photo step is disabled)
- AWAITING_PHOTO: upload photo, issue QR code, finish registration
"""

from app.core.logging import get_logger
from app.flow.context import FlowOptions
from app.flow.effects import IssueQrCode, Reply, Transition, UpdateMember, UploadPhoto
from app.flow.handlers.prompts import move, render_menu, stay, step_prompt
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member
from app.schemas.webhook import EventKind, InboundEvent
from utils.constants import (
    ASK_CARD_MESSAGE,
    ASK_CARD_NO_PHOTO_MESSAGE,
    ASK_PHOTO_MESSAGE,
    INVALID_CARD_MESSAGE,
    INVALID_PHONE_MESSAGE,
    PHOTO_REQUIRED_MESSAGE,
    REGISTRATION_COMPLETE_MESSAGE,
)
from utils.line_utils import create_text_message
from utils.validation_utils import mask_phone, validate_card_number, validate_phone_number

logger = get_logger(__name__)


def complete_registration(options: FlowOptions, *artifacts, **fields) -> Transition:
    """
    Final onboarding transition: artifacts first, then REGISTERED with a
    menu rendered from the stored QR code URL.
    """
    return Transition([
        *artifacts,
        IssueQrCode(only_if_absent=True),
        UpdateMember({**fields, "state": MemberState.of(RegistrationStep.REGISTERED)}),
        Reply(render=render_menu(options, create_text_message(REGISTRATION_COMPLETE_MESSAGE))),
    ])


def handle_awaiting_phone(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.TEXT:
        return stay(*step_prompt(member, options))

    phone = event.text
    if not validate_phone_number(phone):
        logger.info("Rejected phone input")
        return stay(create_text_message(INVALID_PHONE_MESSAGE))

    logger.info(f"Phone accepted: {mask_phone(phone)}")
    prompt = ASK_CARD_MESSAGE if options.require_photo else ASK_CARD_NO_PHOTO_MESSAGE
    return move(MemberState.of(RegistrationStep.AWAITING_CARD), create_text_message(prompt), phone=phone)


def handle_awaiting_card(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.TEXT:
        return stay(*step_prompt(member, options))

    card_number = event.text
    if not validate_card_number(card_number):
        logger.info("Rejected card number input")
        return stay(create_text_message(INVALID_CARD_MESSAGE))

    if not options.require_photo:
        return complete_registration(options, card_number=card_number)

    return move(
        MemberState.of(RegistrationStep.AWAITING_PHOTO),
        create_text_message(ASK_PHOTO_MESSAGE),
        card_number=card_number,
    )


def handle_awaiting_photo(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    if event.kind != EventKind.IMAGE:
        return stay(create_text_message(PHOTO_REQUIRED_MESSAGE))

    return complete_registration(options, UploadPhoto(media_id=event.media_id))

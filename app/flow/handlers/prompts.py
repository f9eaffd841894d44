"""
app/flow/handlers/prompts.py

Shared reply builders used by several handlers

- Functional member menu
- "What are we waiting for?" prompt for the member's current step
- Small Transition constructors
"""

from typing import Any, Dict, List, Optional

from app.flow.context import FlowOptions
from app.flow.effects import Reply, Transition, UpdateMember
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member
from utils.constants import (
    ASK_PHONE_MESSAGE,
    ASK_CARD_MESSAGE,
    ASK_CARD_NO_PHOTO_MESSAGE,
    ASK_PHOTO_MESSAGE,
    CONFIRM_PHONE_ALT_TEXT,
    CONFIRM_PHONE_MESSAGE,
    EDIT_CARD_PROMPT,
    EDIT_PHONE_PROMPT,
    EDIT_PHOTO_PROMPT,
    MENU_HINT_MESSAGE,
)
from utils.line_utils import (
    create_confirm_message,
    create_edit_menu_message,
    create_member_menu,
    create_text_message,
)


def member_menu(member: Member, options: FlowOptions) -> Dict[str, Any]:
    return create_member_menu(member.qr_code_url, options.community_url)


def render_menu(options: FlowOptions, *lead: Dict[str, Any]):
    """Reply renderer: lead messages, then the menu built from the persisted member."""
    def render(member: Member) -> List[Dict[str, Any]]:
        return [*lead, member_menu(member, options)]
    return render


def confirm_phone_message(old_phone: Optional[str], new_phone: str) -> Dict[str, Any]:
    return create_confirm_message(
        CONFIRM_PHONE_MESSAGE.format(old_phone=old_phone, new_phone=new_phone),
        alt_text=CONFIRM_PHONE_ALT_TEXT,
    )


def step_prompt(member: Member, options: FlowOptions) -> List[Dict[str, Any]]:
    """
    Messages reminding the member what the current step expects.
    """
    state = member.state
    if state.confirm_pending:
        return [confirm_phone_message(member.phone, state.pending_phone)]

    step = state.step
    if step == RegistrationStep.AWAITING_PHONE:
        return [create_text_message(ASK_PHONE_MESSAGE)]
    if step == RegistrationStep.AWAITING_CARD:
        text = ASK_CARD_MESSAGE if options.require_photo else ASK_CARD_NO_PHOTO_MESSAGE
        return [create_text_message(text)]
    if step == RegistrationStep.AWAITING_PHOTO:
        return [create_text_message(ASK_PHOTO_MESSAGE)]
    if step == RegistrationStep.EDIT_MENU:
        return [create_edit_menu_message()]
    if step == RegistrationStep.EDIT_PHONE:
        return [create_text_message(EDIT_PHONE_PROMPT)]
    if step == RegistrationStep.EDIT_CARD:
        return [create_text_message(EDIT_CARD_PROMPT)]
    if step == RegistrationStep.EDIT_PHOTO:
        return [create_text_message(EDIT_PHOTO_PROMPT)]
    return [create_text_message(MENU_HINT_MESSAGE), member_menu(member, options)]


def stay(*messages: Dict[str, Any]) -> Transition:
    """No state change; touch the member and reply."""
    return Transition([UpdateMember(), Reply(messages=messages)])


def move(state: MemberState, *messages: Dict[str, Any], **fields: Any) -> Transition:
    """Change state (and optionally fields), then reply."""
    return Transition([UpdateMember({**fields, "state": state}), Reply(messages=messages)])


def finish(options: FlowOptions, *lead: Dict[str, Any], **fields: Any) -> Transition:
    """Return to REGISTERED (clearing any pending phone) and reply with the menu."""
    return Transition([
        UpdateMember({**fields, "state": MemberState.of(RegistrationStep.REGISTERED)}),
        Reply(render=render_menu(options, *lead)),
    ])

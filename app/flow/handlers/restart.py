"""
app/flow/handlers/restart.py

Handles: starting registration over

- "重新註冊" / "re-register" command (any state, user-visible)
- Stale registration reset (periodic sweep, silent)
"""

from datetime import datetime
from typing import Optional

from app.flow.context import FlowOptions
from app.flow.effects import Reply, Transition, UpdateMember
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member
from app.schemas.webhook import InboundEvent
from utils.constants import RESTART_MESSAGE
from utils.line_utils import create_text_message
from utils.time_utils import is_registration_stale

# Onboarding steps the sweep may reclaim; AWAITING_PHONE is already the reset target
STALE_STEPS = (RegistrationStep.AWAITING_CARD, RegistrationStep.AWAITING_PHOTO)


def handle_restart(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    """
    Clears everything collected so far, including the QR code, and asks
    for the phone number again.
    """
    return Transition([
        UpdateMember({
            "phone": None,
            "card_number": None,
            "photo_url": None,
            "qr_code_url": None,
            "state": MemberState.of(RegistrationStep.AWAITING_PHONE),
        }),
        Reply(messages=(create_text_message(RESTART_MESSAGE),)),
    ])


def stale_reset_transition(member: Member, now: datetime, window_hours: int) -> Optional[Transition]:
    """
    Silent reset of an abandoned registration.

    Collected fields are kept (the user re-enters them anyway); only the
    step goes back to AWAITING_PHONE. No reply is produced.

    Returns:
        Transition, or None if the member is not eligible
    """
    if member.state.step not in STALE_STEPS:
        return None
    if not is_registration_stale(member.last_active_at, now, window_hours):
        return None
    return Transition([
        UpdateMember({"state": MemberState.of(RegistrationStep.AWAITING_PHONE)}),
    ])

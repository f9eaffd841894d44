"""
app/flow/dispatcher.py

Purpose: Central event dispatcher

- Receives classified events from the webhook
- Routes (member, event) to the handler for the member's state
- Serializes processing per LINE user
- Hands the resulting transition to the effect executor
"""

import asyncio
from typing import Callable, Dict, List, Optional

from app.core.exceptions import ExternalServiceError, ReplyDeliveryError
from app.core.logging import LogContext, get_logger
from app.flow.context import FlowContext, FlowOptions
from app.flow.effects import Transition
from app.flow.handlers.edit import (
    handle_cancel,
    handle_confirm_no,
    handle_confirm_pending,
    handle_confirm_yes,
    handle_edit_card,
    handle_edit_field_postback,
    handle_edit_menu,
    handle_edit_phone,
    handle_edit_photo,
    is_cancel,
)
from app.flow.handlers.follow import handle_new_follower, handle_returning_follower
from app.flow.handlers.menu import handle_edit_info, handle_my_info, handle_my_qr, handle_registered
from app.flow.handlers.onboarding import handle_awaiting_card, handle_awaiting_phone, handle_awaiting_photo
from app.flow.handlers.restart import handle_restart
from app.flow.states import EDIT_STEPS, RegistrationStep, describe_step
from app.models.member import Member
from app.schemas.webhook import EventKind, InboundEvent, PostbackAction
from utils.constants import ERROR_RETRY_MESSAGE
from utils.line_utils import create_text_message
from utils.validation_utils import is_restart_command

logger = get_logger(__name__)

Handler = Callable[[Member, InboundEvent, FlowOptions], Transition]

# Postback handlers apply in every state
POSTBACK_HANDLERS: Dict[PostbackAction, Handler] = {
    PostbackAction.MY_QR: handle_my_qr,
    PostbackAction.MY_INFO: handle_my_info,
    PostbackAction.EDIT_INFO: handle_edit_info,
    PostbackAction.EDIT_PHONE: handle_edit_field_postback("phone"),
    PostbackAction.EDIT_CARD: handle_edit_field_postback("card_number"),
    PostbackAction.EDIT_PHOTO: handle_edit_field_postback("photo_url"),
    PostbackAction.CONFIRM_PHONE_YES: handle_confirm_yes,
    PostbackAction.CONFIRM_PHONE_NO: handle_confirm_no,
}

# Text / image handlers, by step
STEP_HANDLERS: Dict[RegistrationStep, Handler] = {
    RegistrationStep.AWAITING_PHONE: handle_awaiting_phone,
    RegistrationStep.AWAITING_CARD: handle_awaiting_card,
    RegistrationStep.AWAITING_PHOTO: handle_awaiting_photo,
    RegistrationStep.REGISTERED: handle_registered,
    RegistrationStep.EDIT_MENU: handle_edit_menu,
    RegistrationStep.EDIT_PHONE: handle_edit_phone,
    RegistrationStep.EDIT_CARD: handle_edit_card,
    RegistrationStep.EDIT_PHOTO: handle_edit_photo,
}


def route_event(member: Optional[Member], event: InboundEvent, options: FlowOptions) -> Transition:
    """
    Pure transition function: (member snapshot, event) -> effects.

    Priority:
    1. Restart command (any state)
    2. Follow
    3. Postback buttons
    4. Pending phone confirmation
    5. Step handler

    Returns:
        Transition; empty when the event must be dropped
    """
    if not event.is_handled:
        return Transition.empty()

    if member is None:
        if event.kind == EventKind.FOLLOW:
            return handle_new_follower(event, options)
        # Unknown member outside the follow path
        return Transition.empty()

    if event.kind == EventKind.TEXT and is_restart_command(event.text):
        return handle_restart(member, event, options)

    if event.kind == EventKind.FOLLOW:
        return handle_returning_follower(member, event, options)

    if event.kind == EventKind.POSTBACK:
        return POSTBACK_HANDLERS[event.action](member, event, options)

    if member.state.confirm_pending:
        return handle_confirm_pending(member, event, options)

    if member.state.step in EDIT_STEPS and is_cancel(event):
        return handle_cancel(member, event, options)

    return STEP_HANDLERS[member.state.step](member, event, options)


async def _follower_name(event: InboundEvent, ctx: FlowContext) -> str:
    try:
        profile = await ctx.gateway.get_profile(event.line_user_id)
        return profile.display_name
    except ExternalServiceError as e:
        logger.warning(f"Could not fetch LINE profile, using blank name: {e.message}")
        return ""


async def _send_retry_notice(event: InboundEvent, ctx: FlowContext) -> None:
    if not event.reply_token:
        return
    try:
        await ctx.gateway.reply(event.reply_token, [create_text_message(ERROR_RETRY_MESSAGE)])
    except ExternalServiceError as e:
        logger.warning(f"Could not send retry notice: {e.message}")


async def dispatch_event(event: InboundEvent, ctx: FlowContext) -> Optional[Member]:
    """
    Processes one classified event end to end.

    Collaborator failures are logged and leave the member as it was
    (or, for reply failures, as already committed); they never propagate
    so the rest of the webhook batch keeps going.

    Returns:
        The member after the event, or None if nothing was applied
    """
    if not event.is_handled:
        logger.debug(f"Dropping unhandled event ({event.kind.value})")
        return None

    with LogContext(line_user_id=event.line_user_id, event_type=event.kind.value):
        async with ctx.locks.hold(event.line_user_id):
            try:
                member = await ctx.store.get_by_external_id(event.line_user_id)

                if member is None and event.kind == EventKind.FOLLOW and not event.display_name:
                    event = event.model_copy(update={"display_name": await _follower_name(event, ctx)})

                transition = route_event(member, event, ctx.options)
                if transition.is_empty:
                    logger.info(f"No transition for {event.summary} (member known: {member is not None})")
                    return member

                if member is None:
                    logger.info(f"📨 {event.summary} from new follower")
                    return await ctx.executor.execute(None, event, transition)

                with LogContext(member_id=member.member_id, state=member.state.label):
                    logger.info(f"📨 {event.summary} at {describe_step(member.state.step)}")
                    return await ctx.executor.execute(member, event, transition)

            except ReplyDeliveryError as e:
                logger.error(f"❌ Reply failed after update: {e.message}", exc_info=True)
                return None
            except Exception as e:
                logger.error(f"❌ Failed to process {event.summary}: {e}", exc_info=True)
                await _send_retry_notice(event, ctx)
                return None


async def dispatch_events(events: List[InboundEvent], ctx: FlowContext) -> List[Optional[Member]]:
    """
    Processes a webhook batch. Different members run concurrently; events
    of the same member run one at a time in delivery order.
    """
    return list(await asyncio.gather(*(dispatch_event(event, ctx) for event in events)))

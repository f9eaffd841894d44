"""
app/flow/handlers/follow.py

Handles: follow events (entry point)

- New follower: create member in AWAITING_PHONE, welcome + phone prompt
- Returning follower (unblock / re-add): keep state, remind current step
"""

from app.flow.context import FlowOptions
from app.flow.effects import CreateMember, Reply, Transition, UpdateMember
from app.flow.handlers.prompts import step_prompt
from app.models.member import Member
from app.schemas.webhook import InboundEvent
from utils.constants import ASK_PHONE_MESSAGE, WELCOME_MESSAGE, WELCOME_BACK_MESSAGE
from utils.line_utils import create_text_message


def _greeting(template: str, name: str) -> str:
    return template.format(name=f"，{name}" if name else "")


def handle_new_follower(event: InboundEvent, options: FlowOptions) -> Transition:
    welcome = _greeting(WELCOME_MESSAGE, event.display_name)
    return Transition([
        CreateMember(display_name=event.display_name),
        Reply(messages=(
            create_text_message(welcome),
            create_text_message(ASK_PHONE_MESSAGE),
        )),
    ])


def handle_returning_follower(member: Member, event: InboundEvent, options: FlowOptions) -> Transition:
    messages = []
    if member.state.is_onboarded and not member.state.confirm_pending:
        greeting = _greeting(WELCOME_BACK_MESSAGE, member.display_name)
        messages.append(create_text_message(greeting))
    messages.extend(step_prompt(member, options))
    return Transition([UpdateMember(), Reply(messages=tuple(messages))])

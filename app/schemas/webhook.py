"""
app/schemas/webhook.py

Purpose: LINE webhook payload schemas and event classification

- Validates the incoming webhook body
- Normalizes raw LINE events into InboundEvent (follow / text / image / postback)
- Classification is a pure projection: no storage, no network
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from utils.constants import (
    POSTBACK_MY_QR,
    POSTBACK_MY_INFO,
    POSTBACK_EDIT_INFO,
    POSTBACK_EDIT_PHONE,
    POSTBACK_EDIT_CARD,
    POSTBACK_EDIT_PHOTO,
    POSTBACK_CONFIRM_PHONE_YES,
    POSTBACK_CONFIRM_PHONE_NO,
    TEXT_POSTBACK_ALIASES,
)
from utils.time_utils import utcnow
from utils.validation_utils import sanitize_input


class LineWebhookPayload(BaseModel):
    """
    Body of a LINE webhook request. Events stay raw until classified.
    """
    destination: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)


class EventKind(str, Enum):
    FOLLOW = "follow"
    TEXT = "text"
    IMAGE = "image"
    POSTBACK = "postback"
    UNHANDLED = "unhandled"


class PostbackAction(str, Enum):
    """
    Fixed set of postback tokens understood by the bot.
    """
    MY_QR = POSTBACK_MY_QR
    MY_INFO = POSTBACK_MY_INFO
    EDIT_INFO = POSTBACK_EDIT_INFO
    EDIT_PHONE = POSTBACK_EDIT_PHONE
    EDIT_CARD = POSTBACK_EDIT_CARD
    EDIT_PHOTO = POSTBACK_EDIT_PHOTO
    CONFIRM_PHONE_YES = POSTBACK_CONFIRM_PHONE_YES
    CONFIRM_PHONE_NO = POSTBACK_CONFIRM_PHONE_NO


class InboundEvent(BaseModel):
    """
    Normalized event for internal processing.

    Exactly one payload field is meaningful per kind:
    FOLLOW -> display_name (filled in by the dispatcher from the LINE profile),
    TEXT -> text, IMAGE -> media_id, POSTBACK -> action.
    """
    kind: EventKind
    line_user_id: Optional[str] = None
    reply_token: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    display_name: str = ""
    text: Optional[str] = None
    media_id: Optional[str] = None
    action: Optional[PostbackAction] = None

    @property
    def is_handled(self) -> bool:
        return self.kind != EventKind.UNHANDLED and bool(self.line_user_id)

    @property
    def summary(self) -> str:
        if self.kind == EventKind.TEXT:
            return f"text({self.text[:30]!r})"
        if self.kind == EventKind.IMAGE:
            return f"image({self.media_id})"
        if self.kind == EventKind.POSTBACK:
            return f"postback({self.action.value})"
        return self.kind.value


def _event_timestamp(raw: Dict[str, Any]) -> datetime:
    millis = raw.get("timestamp")
    if isinstance(millis, (int, float)):
        return datetime.fromtimestamp(millis / 1000, timezone.utc).replace(tzinfo=None)
    return utcnow()


def _unhandled(raw: Dict[str, Any], user_id: Optional[str]) -> InboundEvent:
    return InboundEvent(
        kind=EventKind.UNHANDLED,
        line_user_id=user_id,
        reply_token=raw.get("replyToken"),
        timestamp=_event_timestamp(raw),
    )


def parse_postback_action(data: Optional[str]) -> Optional[PostbackAction]:
    """
    Maps postback data to an action token.

    Accepts the bare token ("my_qr") or a query-string style payload
    ("action=my_qr&src=richmenu").
    """
    if not data:
        return None
    token = data.strip()
    if "=" in token:
        pairs = dict(part.split("=", 1) for part in token.split("&") if "=" in part)
        token = pairs.get("action", "")
    try:
        return PostbackAction(token)
    except ValueError:
        return None


def classify_event(raw: Dict[str, Any]) -> InboundEvent:
    """
    Classifies a raw LINE webhook event.

    LINE format:
    {
        "type": "message",
        "replyToken": "b60d432864f44d079f6d8efe86cf404b",
        "source": {"type": "user", "userId": "U4af4980629..."},
        "timestamp": 1462629479859,
        "message": {"id": "325708", "type": "text", "text": "Hello"}
    }

    Returns:
        InboundEvent; unknown types, unknown postback tokens and events
        without a user source come back as UNHANDLED
    """
    source = raw.get("source") or {}
    user_id = source.get("userId")
    if not user_id:
        return _unhandled(raw, None)

    event_type = raw.get("type")
    base = {
        "line_user_id": user_id,
        "reply_token": raw.get("replyToken"),
        "timestamp": _event_timestamp(raw),
    }

    if event_type == "follow":
        return InboundEvent(kind=EventKind.FOLLOW, **base)

    if event_type == "postback":
        action = parse_postback_action((raw.get("postback") or {}).get("data"))
        if action is None:
            return _unhandled(raw, user_id)
        return InboundEvent(kind=EventKind.POSTBACK, action=action, **base)

    if event_type == "message":
        message = raw.get("message") or {}
        message_type = message.get("type")

        if message_type == "text":
            text = sanitize_input(message.get("text"))
            alias = TEXT_POSTBACK_ALIASES.get(text)
            if alias:
                # Typed rich menu label behaves like tapping the button
                return InboundEvent(kind=EventKind.POSTBACK, action=PostbackAction(alias), **base)
            return InboundEvent(kind=EventKind.TEXT, text=text, **base)

        if message_type == "image":
            media_id = message.get("id")
            if not media_id:
                return _unhandled(raw, user_id)
            return InboundEvent(kind=EventKind.IMAGE, media_id=media_id, **base)

    return _unhandled(raw, user_id)

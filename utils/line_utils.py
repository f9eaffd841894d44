"""
utils/line_utils.py

Purpose: LINE message builders

- Constructs text, image, flex and template payloads
- Abstracts LINE Messaging API formatting
- Postback buttons carry the tokens from utils.constants
"""

from typing import List, Dict, Optional, Any, Tuple

from utils.constants import (
    MENU_ALT_TEXT,
    MENU_TITLE,
    BUTTON_MY_QR,
    BUTTON_MY_INFO,
    BUTTON_EDIT_INFO,
    BUTTON_VIEW_QR,
    BUTTON_COMMUNITY,
    BUTTON_EDIT_PHONE,
    BUTTON_EDIT_CARD,
    BUTTON_EDIT_PHOTO,
    BUTTON_CANCEL,
    BUTTON_YES,
    BUTTON_NO,
    EDIT_MENU_MESSAGE,
    INFO_CARD_ALT_TEXT,
    INFO_CARD_TITLE,
    INFO_NOT_SET,
    POSTBACK_MY_QR,
    POSTBACK_MY_INFO,
    POSTBACK_EDIT_INFO,
    POSTBACK_EDIT_PHONE,
    POSTBACK_EDIT_CARD,
    POSTBACK_EDIT_PHOTO,
    POSTBACK_CONFIRM_PHONE_YES,
    POSTBACK_CONFIRM_PHONE_NO,
)

# LINE accepts at most 5 message objects per reply/push call
MAX_MESSAGES_PER_CALL = 5

# Template and quick reply labels are limited to 20 characters
MAX_LABEL_LENGTH = 20


def _label(text: str) -> str:
    return text[:MAX_LABEL_LENGTH]


def postback_action(label: str, data: str, display_text: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates a postback action.

    Args:
        label: Button label (max 20 chars)
        data: Postback token delivered back to the webhook
        display_text: Optional text echoed into the chat when tapped
    """
    action = {"type": "postback", "label": _label(label), "data": data}
    if display_text:
        action["displayText"] = display_text
    return action


def uri_action(label: str, uri: str) -> Dict[str, Any]:
    return {"type": "uri", "label": _label(label), "uri": uri}


def create_text_message(text: str, quick_reply: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Creates a simple text message.

    Args:
        text: Message text
        quick_reply: Optional list of actions shown as quick reply chips (max 13)

    Returns:
        Message payload dict
    """
    message = {"type": "text", "text": text}
    if quick_reply:
        message["quickReply"] = {
            "items": [{"type": "action", "action": action} for action in quick_reply[:13]]
        }
    return message


def create_image_message(url: str, preview_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates an image message from a public HTTPS URL pair.
    """
    return {
        "type": "image",
        "originalContentUrl": url,
        "previewImageUrl": preview_url or url,
    }


def create_member_menu(qr_url: Optional[str] = None, community_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates the functional member menu (flex bubble).

    Buttons: My QR, My Info, Edit Info; plus a direct link to the QR image
    when one exists, and the community link when configured.
    """
    buttons = [
        {
            "type": "button",
            "style": "primary",
            "color": "#FF6F61",
            "action": postback_action(BUTTON_MY_QR, POSTBACK_MY_QR),
        },
        {
            "type": "button",
            "style": "primary",
            "color": "#2D9CDB",
            "action": postback_action(BUTTON_MY_INFO, POSTBACK_MY_INFO),
        },
        {
            "type": "button",
            "style": "primary",
            "color": "#F2994A",
            "action": postback_action(BUTTON_EDIT_INFO, POSTBACK_EDIT_INFO),
        },
    ]

    if qr_url:
        buttons.append({
            "type": "button",
            "style": "link",
            "action": uri_action(BUTTON_VIEW_QR, qr_url),
        })

    if community_url:
        buttons.append({
            "type": "button",
            "style": "primary",
            "color": "#27AE60",
            "action": uri_action(BUTTON_COMMUNITY, community_url),
        })

    return {
        "type": "flex",
        "altText": MENU_ALT_TEXT,
        "contents": {
            "type": "bubble",
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "md",
                "contents": [
                    {"type": "text", "text": MENU_TITLE, "weight": "bold", "size": "md", "align": "center"},
                    *buttons,
                ],
            },
        },
    }


def create_info_card(
    member_id: int,
    display_name: Optional[str],
    phone: Optional[str],
    card_number: Optional[str],
    joined: str,
    photo_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Creates the member info card (flex bubble), with the member photo as hero image.
    """
    rows: List[Tuple[str, str]] = [
        ("📝 姓名", display_name or INFO_NOT_SET),
        ("📞 電話", phone or INFO_NOT_SET),
        ("💳 卡號", card_number or INFO_NOT_SET),
        ("🆔 會員 ID", str(member_id)),
        ("📅 加入日期", joined),
    ]

    bubble: Dict[str, Any] = {
        "type": "bubble",
        "body": {
            "type": "box",
            "layout": "vertical",
            "spacing": "sm",
            "contents": [
                {"type": "text", "text": INFO_CARD_TITLE, "weight": "bold", "size": "md"},
                *[
                    {
                        "type": "box",
                        "layout": "baseline",
                        "contents": [
                            {"type": "text", "text": label, "size": "sm", "color": "#888888", "flex": 3},
                            {"type": "text", "text": value, "size": "sm", "wrap": True, "flex": 5},
                        ],
                    }
                    for label, value in rows
                ],
            ],
        },
    }

    if photo_url:
        bubble["hero"] = {
            "type": "image",
            "url": photo_url,
            "size": "full",
            "aspectMode": "cover",
            "aspectRatio": "1:1",
        }

    return {"type": "flex", "altText": INFO_CARD_ALT_TEXT, "contents": bubble}


def create_edit_menu_message(text: str = EDIT_MENU_MESSAGE) -> Dict[str, Any]:
    """
    Creates the "which field?" prompt with quick reply buttons.
    """
    return create_text_message(
        text,
        quick_reply=[
            postback_action(BUTTON_EDIT_PHONE, POSTBACK_EDIT_PHONE, BUTTON_EDIT_PHONE),
            postback_action(BUTTON_EDIT_CARD, POSTBACK_EDIT_CARD, BUTTON_EDIT_CARD),
            postback_action(BUTTON_EDIT_PHOTO, POSTBACK_EDIT_PHOTO, BUTTON_EDIT_PHOTO),
            {"type": "message", "label": BUTTON_CANCEL, "text": BUTTON_CANCEL},
        ],
    )


def create_confirm_message(
    text: str,
    alt_text: str,
    yes_data: str = POSTBACK_CONFIRM_PHONE_YES,
    no_data: str = POSTBACK_CONFIRM_PHONE_NO,
) -> Dict[str, Any]:
    """
    Creates a yes/no confirm template.

    Args:
        text: Question (max 240 chars)
        alt_text: Notification / fallback text
        yes_data: Postback token for "yes"
        no_data: Postback token for "no"
    """
    return {
        "type": "template",
        "altText": alt_text,
        "template": {
            "type": "confirm",
            "text": text[:240],
            "actions": [
                postback_action(BUTTON_YES, yes_data, BUTTON_YES),
                postback_action(BUTTON_NO, no_data, BUTTON_NO),
            ],
        },
    }

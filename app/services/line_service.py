"""
app/services/line_service.py

Purpose: LINE Messaging API client

- Reply and push messages
- User profile lookup (display name)
- Download of user-sent images
- Webhook signature verification
"""

from typing import Any, Dict, List, Optional

import httpx
from linebot.v3.webhook import SignatureValidator

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.flow.context import LineProfile, MediaContent
from utils.line_utils import MAX_MESSAGES_PER_CALL

logger = get_logger(__name__)


def verify_line_signature(body: bytes, signature: Optional[str], channel_secret: str) -> bool:
    """
    Checks the X-Line-Signature header against the raw request body.
    """
    if not signature:
        return False
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return SignatureValidator(channel_secret).validate(text, signature)


class LineMessagingService:
    """Service for talking to the LINE Messaging API"""

    def __init__(
        self,
        access_token: Optional[str] = None,
        api_base_url: Optional[str] = None,
        data_api_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or settings.LINE_CHANNEL_ACCESS_TOKEN
        self.api_base_url = (api_base_url or settings.LINE_API_BASE_URL).rstrip("/")
        self.data_api_base_url = (data_api_base_url or settings.LINE_DATA_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"LINE API timeout: {method} {url}")
            raise ExternalServiceError("LINE API timeout", details={"url": url}) from e
        except httpx.HTTPError as e:
            logger.error(f"LINE API request failed: {e}")
            raise ExternalServiceError(f"LINE API request failed: {e}", details={"url": url}) from e

        if response.status_code != 200:
            logger.error(f"❌ LINE API error: {response.status_code} - {response.text[:200]}")
            raise ExternalServiceError(
                f"LINE API error: {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )
        return response

    async def get_profile(self, user_id: str) -> LineProfile:
        response = await self._request("GET", f"{self.api_base_url}/v2/bot/profile/{user_id}")
        data = response.json()
        return LineProfile(
            user_id=data.get("userId", user_id),
            display_name=data.get("displayName") or "",
            picture_url=data.get("pictureUrl"),
        )

    async def reply(self, reply_token: str, messages: List[Dict[str, Any]]) -> None:
        """
        Replies to an event. A reply token is valid once, so all messages
        for an event go in this single call.
        """
        await self._request(
            "POST",
            f"{self.api_base_url}/v2/bot/message/reply",
            json={"replyToken": reply_token, "messages": messages[:MAX_MESSAGES_PER_CALL]},
        )

    async def push(self, user_id: str, messages: List[Dict[str, Any]]) -> None:
        await self._request(
            "POST",
            f"{self.api_base_url}/v2/bot/message/push",
            json={"to": user_id, "messages": messages[:MAX_MESSAGES_PER_CALL]},
        )
        logger.info(f"📤 Pushed {len(messages)} message(s)")

    async def get_media_content(self, message_id: str) -> MediaContent:
        """Downloads the binary content of an image message."""
        response = await self._request(
            "GET", f"{self.data_api_base_url}/v2/bot/message/{message_id}/content"
        )
        content_type = response.headers.get("content-type", "image/jpeg")
        return MediaContent(content=response.content, content_type=content_type)

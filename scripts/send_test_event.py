"""
Sends a signed LINE webhook event to a running server.

Usage:
    python scripts/send_test_event.py follow
    python scripts/send_test_event.py text 0912345678
"""
import asyncio
import base64
import hashlib
import hmac
import json
import sys
import time

import httpx

from app.core.config import settings

USER_ID = "Utest00000000000000000000000000000"


def build_event(kind: str, value: str = "") -> dict:
    event = {
        "type": "follow",
        "timestamp": int(time.time() * 1000),
        "source": {"type": "user", "userId": USER_ID},
        "replyToken": "00000000000000000000000000000000",
        "mode": "active",
    }
    if kind == "text":
        event["type"] = "message"
        event["message"] = {"id": "1", "type": "text", "text": value}
    elif kind == "postback":
        event["type"] = "postback"
        event["postback"] = {"data": value}
    return event


def sign(body: bytes) -> str:
    digest = hmac.new((settings.LINE_CHANNEL_SECRET or "").encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


async def send_event(kind: str, value: str):
    url = f"http://localhost:8000{settings.API_PREFIX}/webhook"
    body = json.dumps({"destination": "Utest", "events": [build_event(kind, value)]}).encode("utf-8")

    print(f"🧪 Testing webhook: {url}")
    print(f"📤 Sending {kind} event\n")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                url,
                content=body,
                headers={"Content-Type": "application/json", "X-Line-Signature": sign(body)},
                timeout=10.0
            )

            print(f"✅ Status: {response.status_code}")
            print(f"📥 Response: {response.text[:200]}")

            if response.status_code != 200:
                print(f"\n❌ Webhook returned {response.status_code}")

    except httpx.HTTPError as e:
        print(f"❌ Error: {e}")


if __name__ == "__main__":
    kind = sys.argv[1] if len(sys.argv) > 1 else "follow"
    value = sys.argv[2] if len(sys.argv) > 2 else ""
    asyncio.run(send_event(kind, value))

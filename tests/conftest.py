"""
Shared fixtures: in-memory collaborators and event builders.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from app.core.exceptions import ExternalServiceError, MemberStoreError
from app.flow.context import FlowContext, FlowOptions, LineProfile, MediaContent
from app.flow.states import MemberState, RegistrationStep
from app.models.member import Member, document_changes
from app.schemas.webhook import EventKind, InboundEvent, PostbackAction


class InMemoryMemberStore:
    """MemberStore over a dict. `latency` forces a task switch on every call."""

    def __init__(self, calls: Optional[list] = None, latency: float = 0):
        self.members: Dict[int, Member] = {}
        self.calls = calls if calls is not None else []
        self.latency = latency
        self.fail_writes = False
        self._next_id = 1

    async def _tick(self):
        await asyncio.sleep(self.latency)

    def add(self, line_user_id: str = "U1", **fields) -> Member:
        member = Member(member_id=self._next_id, line_user_id=line_user_id, **fields)
        self._next_id += 1
        self.members[member.member_id] = member
        return member

    def find(self, line_user_id: str) -> Optional[Member]:
        for member in self.members.values():
            if member.line_user_id == line_user_id:
                return member
        return None

    async def get_by_external_id(self, line_user_id: str) -> Optional[Member]:
        await self._tick()
        return self.find(line_user_id)

    async def get_by_id(self, member_id: int) -> Optional[Member]:
        await self._tick()
        return self.members.get(member_id)

    async def insert(self, line_user_id: str, display_name: str) -> Member:
        await self._tick()
        if self.fail_writes:
            raise MemberStoreError("insert failed")
        existing = self.find(line_user_id)
        if existing:
            return existing
        self.calls.append(("insert", line_user_id))
        return self.add(line_user_id, display_name=display_name)

    async def update(self, member_id: int, changes: Dict[str, Any]) -> Member:
        await self._tick()
        if self.fail_writes:
            raise MemberStoreError("update failed")
        document_changes(changes)
        member = self.members[member_id].apply(changes)
        self.members[member_id] = member
        self.calls.append(("update", member_id, dict(changes)))
        return member

    async def find_stale(self, steps, before: datetime) -> List[Member]:
        await self._tick()
        steps = set(steps)
        return [
            member for member in self.members.values()
            if member.state.step in steps and member.last_active_at < before
        ]


class FakeMessagingGateway:
    def __init__(self, calls: Optional[list] = None):
        self.calls = calls if calls is not None else []
        self.replies: List[tuple] = []
        self.pushes: List[tuple] = []
        self.profiles: Dict[str, str] = {}
        self.fail_reply = False
        self.fail_media = False
        self.fail_profile = False

    async def get_profile(self, user_id: str) -> LineProfile:
        if self.fail_profile:
            raise ExternalServiceError("profile unavailable")
        return LineProfile(user_id=user_id, display_name=self.profiles.get(user_id, "小明"))

    async def reply(self, reply_token: str, messages: List[Dict[str, Any]]) -> None:
        if self.fail_reply:
            raise ExternalServiceError("reply failed")
        self.calls.append(("reply", reply_token))
        self.replies.append((reply_token, list(messages)))

    async def push(self, user_id: str, messages: List[Dict[str, Any]]) -> None:
        self.calls.append(("push", user_id))
        self.pushes.append((user_id, list(messages)))

    async def get_media_content(self, message_id: str) -> MediaContent:
        if self.fail_media:
            raise ExternalServiceError("media unavailable")
        self.calls.append(("media", message_id))
        return MediaContent(content=f"jpeg:{message_id}".encode(), content_type="image/jpeg")

    def last_messages(self) -> List[Dict[str, Any]]:
        return self.replies[-1][1]

    def last_texts(self) -> List[str]:
        return [message.get("text", "") for message in self.last_messages()]


class FakeArtifactService:
    base_url = "https://cdn.test"

    def __init__(self, calls: Optional[list] = None):
        self.calls = calls if calls is not None else []
        self.uploads: Dict[tuple, bytes] = {}
        self.codes: List[str] = []
        self.fail_upload = False

    async def generate_code(self, payload_url: str, size: int) -> bytes:
        self.codes.append(payload_url)
        return f"png:{payload_url}".encode()

    async def upload(self, content: bytes, folder: str, key: str, content_type: str = "image/png") -> str:
        if self.fail_upload:
            raise ExternalServiceError("upload failed")
        self.calls.append(("upload", folder, key))
        self.uploads[(folder, key)] = content
        return f"{self.base_url}/{folder}/{key}"


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def calls():
    return []


@pytest.fixture
def store(calls):
    return InMemoryMemberStore(calls)


@pytest.fixture
def gateway(calls):
    return FakeMessagingGateway(calls)


@pytest.fixture
def artifacts(calls):
    return FakeArtifactService(calls)


@pytest.fixture
def options():
    return FlowOptions()


@pytest.fixture
def ctx(store, gateway, artifacts, options):
    return FlowContext(store=store, gateway=gateway, artifacts=artifacts, options=options)


# ============================================================
# BUILDERS
# ============================================================

def run(coro):
    return asyncio.run(coro)


def follow(user: str = "U1", token: str = "rt-follow") -> InboundEvent:
    return InboundEvent(kind=EventKind.FOLLOW, line_user_id=user, reply_token=token)


def text(content: str, user: str = "U1", token: str = "rt-text") -> InboundEvent:
    return InboundEvent(kind=EventKind.TEXT, line_user_id=user, reply_token=token, text=content)


def image(media_id: str = "m1", user: str = "U1", token: str = "rt-image") -> InboundEvent:
    return InboundEvent(kind=EventKind.IMAGE, line_user_id=user, reply_token=token, media_id=media_id)


def postback(action: PostbackAction, user: str = "U1", token: str = "rt-postback") -> InboundEvent:
    return InboundEvent(kind=EventKind.POSTBACK, line_user_id=user, reply_token=token, action=action)


def state(step: RegistrationStep, pending_phone: Optional[str] = None) -> MemberState:
    return MemberState(step, pending_phone=pending_phone)


def registered(store: InMemoryMemberStore, line_user_id: str = "U1", **fields) -> Member:
    values = {
        "display_name": "小明",
        "phone": "0912345678",
        "card_number": "A1B2C3",
        "photo_url": "https://cdn.test/member_photos/member_1_1700000000",
        "qr_code_url": "https://cdn.test/line_qrcodes/member_1",
        "state": state(RegistrationStep.REGISTERED),
    }
    values.update(fields)
    return store.add(line_user_id, **values)

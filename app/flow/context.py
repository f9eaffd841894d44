"""
app/flow/context.py

Purpose: Collaborator interfaces and wiring for the flow

- MemberStore / MessagingGateway / ArtifactService protocols
- FlowOptions: configuration toggles read by the state machine
- FlowContext: everything dispatch_event() needs, built once at startup
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from app.core.config import settings
from app.core.locks import MemberLockRegistry
from app.flow.states import RegistrationStep
from app.models.member import Member


class MemberStore(Protocol):
    """
    Persistence for member records.

    Callers serialize access per LINE user with MemberLockRegistry;
    implementations must make each single call atomic.
    """

    async def get_by_external_id(self, line_user_id: str) -> Optional[Member]:
        ...

    async def get_by_id(self, member_id: int) -> Optional[Member]:
        ...

    async def insert(self, line_user_id: str, display_name: str) -> Member:
        """Create a member in AWAITING_PHONE; returns the existing one on duplicate."""
        ...

    async def update(self, member_id: int, changes: Dict[str, Any]) -> Member:
        """Apply field changes and return the updated member."""
        ...

    async def find_stale(self, steps: Iterable[RegistrationStep], before: datetime) -> List[Member]:
        ...


@dataclass
class LineProfile:
    user_id: str
    display_name: str = ""
    picture_url: Optional[str] = None


@dataclass
class MediaContent:
    content: bytes
    content_type: str = "image/jpeg"


class MessagingGateway(Protocol):
    async def get_profile(self, user_id: str) -> LineProfile:
        ...

    async def reply(self, reply_token: str, messages: List[Dict[str, Any]]) -> None:
        ...

    async def push(self, user_id: str, messages: List[Dict[str, Any]]) -> None:
        ...

    async def get_media_content(self, message_id: str) -> MediaContent:
        ...


class ArtifactService(Protocol):
    async def generate_code(self, payload_url: str, size: int) -> bytes:
        """PNG bytes of a QR code encoding `payload_url`."""
        ...

    async def upload(self, content: bytes, folder: str, key: str, content_type: str = "image/png") -> str:
        """Store `content` under (folder, key), overwriting; returns the public URL."""
        ...


@dataclass(frozen=True)
class FlowOptions:
    require_photo: bool = True
    confirm_phone_change: bool = True
    community_url: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "FlowOptions":
        return cls(
            require_photo=settings.REQUIRE_PHOTO_STEP,
            confirm_phone_change=settings.CONFIRM_PHONE_CHANGE,
            community_url=settings.COMMUNITY_URL,
        )


@dataclass
class FlowContext:
    """
    Shared collaborators for event processing and the stale sweep.
    """
    store: MemberStore
    gateway: MessagingGateway
    artifacts: ArtifactService
    options: FlowOptions = field(default_factory=FlowOptions)
    locks: MemberLockRegistry = field(default_factory=MemberLockRegistry)
    executor: Any = None

    def __post_init__(self):
        if self.executor is None:
            from app.flow.executor import EffectExecutor
            self.executor = EffectExecutor(self.store, self.gateway, self.artifacts)

"""
app/flow/executor.py

Purpose: Applies the effects of a transition

- Artifact effects first (photo upload, QR code), collecting URLs
- One persistence write (create or update), validated against the
  transition table
- Replies last, rendered against the member as persisted

A failure stops everything after it: no write without its artifacts,
no message without the write.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ExternalServiceError, InvalidTransitionError, ReplyDeliveryError
from app.core.logging import get_logger
from app.flow.effects import CreateMember, EffectPhase, IssueQrCode, Reply, Transition, UploadPhoto
from app.flow.states import is_valid_transition
from app.models.member import Member
from app.schemas.webhook import InboundEvent
from utils.line_utils import MAX_MESSAGES_PER_CALL
from utils.time_utils import unix_timestamp, utcnow

logger = get_logger(__name__)


def qr_code_key(member_id: int) -> str:
    """One QR code per member; re-issuing overwrites the same asset."""
    return f"member_{member_id}"


def photo_key(member_id: int, at: datetime) -> str:
    return f"member_{member_id}_{unix_timestamp(at)}"


class EffectExecutor:
    """
    Runs transitions against the store, the LINE gateway and the artifact service.
    """

    def __init__(self, store, gateway, artifacts):
        self.store = store
        self.gateway = gateway
        self.artifacts = artifacts

    async def execute(
        self,
        member: Optional[Member],
        event: Optional[InboundEvent],
        transition: Transition,
    ) -> Optional[Member]:
        """
        Applies `transition` for `member` (None for a new follower).

        Args:
            member: Member snapshot the transition was computed from
            event: Triggering event; None for the stale sweep (no reply, no activity stamp)
            transition: Effects from route_event()

        Returns:
            The member as persisted

        Raises:
            ExternalServiceError: Artifact or store failure (nothing after it ran)
            ReplyDeliveryError: Reply failed; the member update is already committed
            InvalidTransitionError: Transition not allowed from the member's state
        """
        effects = sorted(transition.effects, key=lambda effect: effect.phase)
        now = utcnow()

        if member is None and not transition.of_type(CreateMember):
            raise InvalidTransitionError("Transition for an unknown member must create it")

        # Phase 1: artifacts
        outputs: Dict[str, Any] = {}
        for effect in effects:
            if effect.phase != EffectPhase.ARTIFACT:
                continue
            if member is None:
                raise InvalidTransitionError(f"{type(effect).__name__} needs an existing member")
            outputs.update(await self._run_artifact(member, effect, now))

        # Phase 2: persistence
        member = await self._persist(member, event, transition, outputs, now)

        # Phase 3: messages
        messages = self._render_replies(member, effects)
        if messages and event is not None:
            await self._send(event, messages)

        return member

    async def _run_artifact(self, member: Member, effect, now: datetime) -> Dict[str, Any]:
        if isinstance(effect, UploadPhoto):
            media = await self.gateway.get_media_content(effect.media_id)
            url = await self.artifacts.upload(
                media.content,
                settings.PHOTO_FOLDER,
                photo_key(member.member_id, now),
                content_type=media.content_type,
            )
            logger.info(f"📷 Photo uploaded ({len(media.content)} bytes)")
            return {"photo_url": url}

        if isinstance(effect, IssueQrCode):
            if effect.only_if_absent and member.qr_code_url:
                logger.info("QR code already issued, keeping it")
                return {}
            png = await self.artifacts.generate_code(settings.member_url(member.member_id), settings.QR_CODE_SIZE)
            url = await self.artifacts.upload(png, settings.QR_CODE_FOLDER, qr_code_key(member.member_id))
            logger.info("🔳 QR code issued")
            return {"qr_code_url": url}

        raise InvalidTransitionError(f"Unknown artifact effect: {effect!r}")

    async def _persist(
        self,
        member: Optional[Member],
        event: Optional[InboundEvent],
        transition: Transition,
        outputs: Dict[str, Any],
        now: datetime,
    ) -> Member:
        if member is None:
            create = transition.of_type(CreateMember)[0]
            member = await self.store.insert(event.line_user_id, create.display_name)
            logger.info(f"✅ Created member {member.member_id}")
            return member

        changes = {**transition.changes, **outputs}

        new_state = changes.get("state")
        if new_state is not None:
            if not is_valid_transition(member.state, new_state):
                raise InvalidTransitionError(
                    f"{member.state.label} -> {new_state.label} is not allowed",
                    details={"member_id": member.member_id},
                )
            if new_state != member.state:
                logger.info(f"🔄 {member.state.label} → {new_state.label}")

        if event is not None:
            changes["last_active_at"] = now

        if not changes:
            return member
        return await self.store.update(member.member_id, changes)

    def _render_replies(self, member: Member, effects: List[Any]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for effect in effects:
            if not isinstance(effect, Reply):
                continue
            messages.extend(effect.messages)
            if effect.render is not None:
                messages.extend(effect.render(member))

        if len(messages) > MAX_MESSAGES_PER_CALL:
            logger.warning(f"Dropping {len(messages) - MAX_MESSAGES_PER_CALL} messages over the per-call limit")
            messages = messages[:MAX_MESSAGES_PER_CALL]
        return messages

    async def _send(self, event: InboundEvent, messages: List[Dict[str, Any]]) -> None:
        try:
            if event.reply_token:
                await self.gateway.reply(event.reply_token, messages)
            else:
                await self.gateway.push(event.line_user_id, messages)
        except ExternalServiceError as e:
            raise ReplyDeliveryError(e.message, details=e.details) from e
        logger.info(f"📤 Sent {len(messages)} message(s)")

"""
app/flow/effects.py

Purpose: Side effects emitted by the state machine

- Artifact effects (photo upload, QR code issuing)
- Persistence effects (create / update member)
- Message effects (reply to the LINE event)
- Transition: ordered effect list returned by route_event()
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence

from app.flow.states import MemberState


class EffectPhase(IntEnum):
    """Execution order; the executor never runs a later phase before an earlier one."""
    ARTIFACT = 0
    PERSIST = 1
    MESSAGE = 2


@dataclass(frozen=True)
class UploadPhoto:
    """Fetch user media from LINE, upload it, write `photo_url`."""
    media_id: str
    phase: ClassVar[EffectPhase] = EffectPhase.ARTIFACT


@dataclass(frozen=True)
class IssueQrCode:
    """Render the member resolution URL as a QR code, upload it, write `qr_code_url`."""
    only_if_absent: bool = True
    phase: ClassVar[EffectPhase] = EffectPhase.ARTIFACT


@dataclass(frozen=True)
class CreateMember:
    display_name: str = ""
    phase: ClassVar[EffectPhase] = EffectPhase.PERSIST


@dataclass(frozen=True)
class UpdateMember:
    """
    Member field changes. `state` takes a MemberState; an empty dict
    still stamps `last_active_at`.
    """
    changes: Dict[str, Any] = field(default_factory=dict)
    phase: ClassVar[EffectPhase] = EffectPhase.PERSIST


@dataclass(frozen=True)
class Reply:
    """
    Reply messages. `render` is called with the member as persisted by
    this event, for messages that depend on freshly written URLs.
    """
    messages: Sequence[Dict[str, Any]] = ()
    render: Optional[Callable[[Any], List[Dict[str, Any]]]] = None
    phase: ClassVar[EffectPhase] = EffectPhase.MESSAGE


@dataclass
class Transition:
    """
    Outcome of routing one event: the ordered list of effects to apply.
    """
    effects: List[Any] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "Transition":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.effects

    @property
    def changes(self) -> Dict[str, Any]:
        """All field changes across UpdateMember effects (later wins)."""
        merged: Dict[str, Any] = {}
        for effect in self.effects:
            if isinstance(effect, UpdateMember):
                merged.update(effect.changes)
        return merged

    @property
    def next_state(self) -> Optional[MemberState]:
        """Target state, or None if the transition keeps the current one."""
        return self.changes.get("state")

    def of_type(self, effect_type) -> List[Any]:
        return [effect for effect in self.effects if isinstance(effect, effect_type)]

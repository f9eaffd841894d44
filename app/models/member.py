"""
app/models/member.py

Purpose: Member document model

- LINE user ID and display name
- Phone, card number, photo and QR code URLs
- Registration state (step + pending phone confirmation)
- Mapping to/from the MongoDB `members` document
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.flow.states import MemberState, RegistrationStep
from utils.time_utils import utcnow


# Member fields the state machine is allowed to change
MUTABLE_FIELDS = frozenset({
    "display_name",
    "phone",
    "card_number",
    "photo_url",
    "qr_code_url",
    "state",
    "last_active_at",
})


class Member(BaseModel):
    """
    One member per LINE user.
    """
    member_id: int = Field(..., description="Numeric id, encoded in the QR code URL")
    line_user_id: str = Field(..., description="LINE user ID (unique, immutable)")
    display_name: str = ""
    phone: Optional[str] = None
    card_number: Optional[str] = None
    photo_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    state: MemberState = MemberState(RegistrationStep.AWAITING_PHONE)
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)

    @property
    def is_registered(self) -> bool:
        return self.state.is_onboarded

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Member":
        """
        Builds a Member from a `members` document.

        Stored layout keeps `state` as the integer step code and
        `pending_phone` as a sibling field.
        """
        return cls(
            member_id=doc["member_id"],
            line_user_id=doc["line_user_id"],
            display_name=doc.get("display_name") or "",
            phone=doc.get("phone"),
            card_number=doc.get("card_number"),
            photo_url=doc.get("photo_url"),
            qr_code_url=doc.get("qr_code_url"),
            state=MemberState(
                step=RegistrationStep(doc.get("state", RegistrationStep.AWAITING_PHONE)),
                pending_phone=doc.get("pending_phone"),
            ),
            created_at=doc.get("created_at") or utcnow(),
            last_active_at=doc.get("last_active_at") or utcnow(),
        )

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"state"})
        doc.update(state_fields(self.state))
        return doc

    def apply(self, changes: Dict[str, Any]) -> "Member":
        """Returns a copy with `changes` applied (no persistence)."""
        return self.model_copy(update=changes)


def state_fields(state: MemberState) -> Dict[str, Any]:
    """Flattens a MemberState into its stored fields."""
    return {"state": int(state.step), "pending_phone": state.pending_phone}


def document_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Converts member field changes into a `$set` document.

    Raises:
        ValueError: If a field is not mutable
    """
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

    update: Dict[str, Any] = {}
    for key, value in changes.items():
        if key == "state":
            update.update(state_fields(value))
        else:
            update[key] = value
    return update

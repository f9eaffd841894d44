"""
app/flow/states.py

Purpose: Defines all member registration states

- Persisted step codes (0 = registered, 1-3 onboarding, 10-13 editing)
- MemberState: step + pending phone confirmation as one value
- Metadata for each step
- State transition validation
"""

from enum import IntEnum
from typing import Dict, FrozenSet, Optional
from dataclasses import dataclass


class RegistrationStep(IntEnum):
    """
    Position of a member in the onboarding / edit workflow.
    The integer values are what is stored in the database.
    """

    # Fully onboarded (the only steady state)
    REGISTERED = 0

    # Initial registration path
    AWAITING_PHONE = 1
    AWAITING_CARD = 2
    AWAITING_PHOTO = 3

    # Edit sub-flows (always return to REGISTERED)
    EDIT_MENU = 10
    EDIT_PHONE = 11
    EDIT_CARD = 12
    EDIT_PHOTO = 13


ONBOARDING_STEPS: FrozenSet[RegistrationStep] = frozenset({
    RegistrationStep.AWAITING_PHONE,
    RegistrationStep.AWAITING_CARD,
    RegistrationStep.AWAITING_PHOTO,
})

EDIT_STEPS: FrozenSet[RegistrationStep] = frozenset({
    RegistrationStep.EDIT_MENU,
    RegistrationStep.EDIT_PHONE,
    RegistrationStep.EDIT_CARD,
    RegistrationStep.EDIT_PHOTO,
})

# Steps a pending phone confirmation may be attached to
CONFIRMABLE_STEPS: FrozenSet[RegistrationStep] = frozenset({
    RegistrationStep.REGISTERED,
    RegistrationStep.EDIT_MENU,
})


@dataclass(frozen=True)
class MemberState:
    """
    Complete machine state of a member.

    `pending_phone` is set only while a phone change awaits yes/no
    confirmation (PhoneConfirmPending); it can only ride on REGISTERED
    or EDIT_MENU.
    """
    step: RegistrationStep
    pending_phone: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "step", RegistrationStep(self.step))
        if self.pending_phone is not None and self.step not in CONFIRMABLE_STEPS:
            raise ValueError(
                f"pending_phone cannot be attached to {self.step.name}"
            )

    @property
    def confirm_pending(self) -> bool:
        return self.pending_phone is not None

    @property
    def is_onboarding(self) -> bool:
        return self.step in ONBOARDING_STEPS

    @property
    def is_onboarded(self) -> bool:
        """Registered, or inside an edit sub-flow of a registered member."""
        return self.step not in ONBOARDING_STEPS

    @property
    def label(self) -> str:
        if self.confirm_pending:
            return f"{self.step.name}+PHONE_CONFIRM_PENDING"
        return self.step.name

    @classmethod
    def of(cls, step: RegistrationStep) -> "MemberState":
        return cls(step=step)


@dataclass
class StepMetadata:
    """
    Metadata associated with each registration step.
    """
    step: RegistrationStep
    display_name: str
    step_number: Optional[int] = None  # For progress tracking


STEP_METADATA: Dict[RegistrationStep, StepMetadata] = {
    RegistrationStep.REGISTERED: StepMetadata(
        step=RegistrationStep.REGISTERED,
        display_name="Registered"
    ),
    RegistrationStep.AWAITING_PHONE: StepMetadata(
        step=RegistrationStep.AWAITING_PHONE,
        display_name="Enter phone",
        step_number=1
    ),
    RegistrationStep.AWAITING_CARD: StepMetadata(
        step=RegistrationStep.AWAITING_CARD,
        display_name="Enter card number",
        step_number=2
    ),
    RegistrationStep.AWAITING_PHOTO: StepMetadata(
        step=RegistrationStep.AWAITING_PHOTO,
        display_name="Send photo",
        step_number=3
    ),
    RegistrationStep.EDIT_MENU: StepMetadata(
        step=RegistrationStep.EDIT_MENU,
        display_name="Choose field to edit"
    ),
    RegistrationStep.EDIT_PHONE: StepMetadata(
        step=RegistrationStep.EDIT_PHONE,
        display_name="Edit phone"
    ),
    RegistrationStep.EDIT_CARD: StepMetadata(
        step=RegistrationStep.EDIT_CARD,
        display_name="Edit card number"
    ),
    RegistrationStep.EDIT_PHOTO: StepMetadata(
        step=RegistrationStep.EDIT_PHOTO,
        display_name="Edit photo"
    ),
}


_EDIT_TARGETS = {
    RegistrationStep.REGISTERED,
    RegistrationStep.EDIT_MENU,
    RegistrationStep.EDIT_PHONE,
    RegistrationStep.EDIT_CARD,
    RegistrationStep.EDIT_PHOTO,
    RegistrationStep.AWAITING_PHONE,  # Restart
}

# Valid step transitions - every step also accepts the restart (AWAITING_PHONE)
STEP_TRANSITIONS: Dict[RegistrationStep, FrozenSet[RegistrationStep]] = {
    RegistrationStep.AWAITING_PHONE: frozenset({
        RegistrationStep.AWAITING_PHONE,
        RegistrationStep.AWAITING_CARD,
    }),
    RegistrationStep.AWAITING_CARD: frozenset({
        RegistrationStep.AWAITING_CARD,
        RegistrationStep.AWAITING_PHOTO,
        RegistrationStep.REGISTERED,  # Photo step disabled
        RegistrationStep.AWAITING_PHONE,
    }),
    RegistrationStep.AWAITING_PHOTO: frozenset({
        RegistrationStep.AWAITING_PHOTO,
        RegistrationStep.REGISTERED,
        RegistrationStep.AWAITING_PHONE,
    }),
    RegistrationStep.REGISTERED: frozenset(_EDIT_TARGETS),
    RegistrationStep.EDIT_MENU: frozenset(_EDIT_TARGETS),
    RegistrationStep.EDIT_PHONE: frozenset(_EDIT_TARGETS),
    RegistrationStep.EDIT_CARD: frozenset(_EDIT_TARGETS),
    RegistrationStep.EDIT_PHOTO: frozenset(_EDIT_TARGETS),
}


def is_valid_transition(from_state: MemberState, to_state: MemberState) -> bool:
    """
    Checks if a state transition is allowed.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed = STEP_TRANSITIONS.get(from_state.step, frozenset())
    return to_state.step in allowed


def get_step_metadata(step: RegistrationStep) -> StepMetadata:
    return STEP_METADATA[step]


def describe_step(step: RegistrationStep) -> str:
    """Human readable step name, with onboarding progress (e.g. "Enter card number (2/3)")."""
    metadata = get_step_metadata(step)
    if metadata.step_number is None:
        return metadata.display_name
    return f"{metadata.display_name} ({metadata.step_number}/{len(ONBOARDING_STEPS)})"


"""
States, member model, per-member locks and log context.
"""

import asyncio
import logging
from datetime import datetime

import pytest

from app.core.locks import MemberLockRegistry
from app.core.logging import LogContext, get_logger
from app.flow.states import (
    MemberState,
    RegistrationStep,
    describe_step,
    get_step_metadata,
    is_valid_transition,
)
from app.models.member import Member, document_changes


def test_step_codes_are_persisted_values():
    assert RegistrationStep.REGISTERED == 0
    assert [int(step) for step in RegistrationStep] == [0, 1, 2, 3, 10, 11, 12, 13]


def test_pending_phone_only_on_confirmable_steps():
    assert MemberState(RegistrationStep.REGISTERED, "0912345678").confirm_pending
    assert MemberState(RegistrationStep.EDIT_MENU, "0912345678").confirm_pending
    with pytest.raises(ValueError):
        MemberState(RegistrationStep.AWAITING_CARD, "0912345678")
    with pytest.raises(ValueError):
        MemberState(RegistrationStep.EDIT_PHONE, "0912345678")


def test_state_label():
    assert MemberState(RegistrationStep.EDIT_MENU).label == "EDIT_MENU"
    assert MemberState(RegistrationStep.REGISTERED, "0912345678").label == "REGISTERED+PHONE_CONFIRM_PENDING"


def test_state_from_raw_code():
    assert MemberState(2).step is RegistrationStep.AWAITING_CARD


@pytest.mark.parametrize("source, target, allowed", [
    (RegistrationStep.AWAITING_PHONE, RegistrationStep.AWAITING_CARD, True),
    (RegistrationStep.AWAITING_PHONE, RegistrationStep.REGISTERED, False),
    (RegistrationStep.AWAITING_CARD, RegistrationStep.AWAITING_PHOTO, True),
    (RegistrationStep.AWAITING_PHOTO, RegistrationStep.REGISTERED, True),
    (RegistrationStep.AWAITING_PHOTO, RegistrationStep.EDIT_MENU, False),
    (RegistrationStep.REGISTERED, RegistrationStep.EDIT_PHOTO, True),
    (RegistrationStep.REGISTERED, RegistrationStep.AWAITING_CARD, False),
    (RegistrationStep.EDIT_CARD, RegistrationStep.AWAITING_PHONE, True),
])
def test_transition_table(source, target, allowed):
    assert is_valid_transition(MemberState(source), MemberState(target)) is allowed


def test_every_step_allows_restart():
    for step in RegistrationStep:
        assert is_valid_transition(MemberState(step), MemberState(RegistrationStep.AWAITING_PHONE))


def test_step_metadata():
    assert get_step_metadata(RegistrationStep.AWAITING_CARD).step_number == 2
    assert get_step_metadata(RegistrationStep.EDIT_MENU).step_number is None


@pytest.mark.parametrize("step, text", [
    (RegistrationStep.AWAITING_PHONE, "Enter phone (1/3)"),
    (RegistrationStep.AWAITING_PHOTO, "Send photo (3/3)"),
    (RegistrationStep.REGISTERED, "Registered"),
    (RegistrationStep.EDIT_CARD, "Edit card number"),
])
def test_describe_step(step, text):
    assert describe_step(step) == text


def test_member_document_round_trip_keeps_pending_phone():
    member = Member(
        member_id=3,
        line_user_id="U1",
        phone="0912345678",
        state=MemberState(RegistrationStep.REGISTERED, "0987654321"),
        created_at=datetime(2024, 1, 1),
        last_active_at=datetime(2024, 1, 2),
    )

    doc = member.to_document()
    assert doc["state"] == 0
    assert doc["pending_phone"] == "0987654321"
    assert Member.from_document(doc) == member


def test_member_from_sparse_document():
    member = Member.from_document({"member_id": 1, "line_user_id": "U1"})
    assert member.state == MemberState(RegistrationStep.AWAITING_PHONE)
    assert member.display_name == ""
    assert not member.is_registered


def test_document_changes():
    changes = document_changes({"phone": "0912345678", "state": MemberState(RegistrationStep.AWAITING_CARD)})
    assert changes == {"phone": "0912345678", "state": 2, "pending_phone": None}

    with pytest.raises(ValueError):
        document_changes({"member_id": 5})


# ============================================================
# LOCKS
# ============================================================

def test_lock_serializes_same_key():
    locks = MemberLockRegistry()
    order = []

    async def worker(name, key):
        async with locks.hold(key):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    async def scenario():
        await asyncio.gather(worker("a", "U1"), worker("b", "U1"))

    asyncio.run(scenario())
    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert len(locks) == 0


def test_lock_does_not_block_other_keys():
    locks = MemberLockRegistry()
    order = []

    async def worker(name, key, delay):
        async with locks.hold(key):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    async def scenario():
        await asyncio.gather(worker("a", "U1", 0.02), worker("b", "U2", 0))

    asyncio.run(scenario())
    assert order.index("b-end") < order.index("a-end")


def test_lock_released_on_error():
    locks = MemberLockRegistry()

    async def scenario():
        with pytest.raises(RuntimeError):
            async with locks.hold("U1"):
                raise RuntimeError("boom")
        assert not locks.is_locked("U1")

    asyncio.run(scenario())
    assert len(locks) == 0


# ============================================================
# LOG CONTEXT
# ============================================================

def test_log_context_is_task_local(caplog):
    logger = get_logger("tests.context")

    async def handle(user):
        with LogContext(line_user_id=user):
            await asyncio.sleep(0)
            logger.info(f"processing {user}")

    async def scenario():
        await asyncio.gather(handle("U1"), handle("U2"))

    with caplog.at_level(logging.INFO, logger="memberpass.tests.context"):
        asyncio.run(scenario())

    records = {record.getMessage(): record.line_user_id for record in caplog.records}
    assert records == {"processing U1": "U1", "processing U2": "U2"}


def test_log_context_is_removed_after_block(caplog):
    logger = get_logger("tests.context")

    with caplog.at_level(logging.INFO, logger="memberpass.tests.context"):
        with LogContext(member_id=5):
            logger.info("inside")
        logger.info("outside")

    inside, outside = caplog.records
    assert inside.member_id == 5
    assert not hasattr(outside, "member_id")

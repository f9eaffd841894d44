"""
End-to-end event processing through dispatch_event() with in-memory collaborators.
"""

import logging

from app.core.config import settings
from app.flow.context import FlowContext
from app.flow.dispatcher import dispatch_event, dispatch_events
from app.flow.states import RegistrationStep
from app.schemas.webhook import EventKind, InboundEvent, PostbackAction
from utils.constants import (
    ASK_CARD_MESSAGE,
    ASK_PHONE_MESSAGE,
    ERROR_RETRY_MESSAGE,
    INVALID_CARD_MESSAGE,
    INVALID_PHONE_MESSAGE,
)

from conftest import (
    FakeArtifactService,
    FakeMessagingGateway,
    InMemoryMemberStore,
    follow,
    image,
    postback,
    registered,
    run,
    state,
    text,
)


def flex_uris(message):
    """All URI actions inside a flex bubble."""
    return [
        item["action"]["uri"]
        for item in message["contents"]["body"]["contents"]
        if item.get("type") == "button" and item["action"]["type"] == "uri"
    ]


def complete_registration(ctx, user="U1"):
    run(dispatch_event(follow(user), ctx))
    run(dispatch_event(text("0912345678", user), ctx))
    run(dispatch_event(text("A1B2C3", user), ctx))
    return run(dispatch_event(image("m1", user), ctx))


def test_onboarding_scenario(ctx, store, gateway):
    run(dispatch_event(follow(), ctx))
    assert ASK_PHONE_MESSAGE in gateway.last_texts()
    assert store.find("U1").display_name == "小明"

    member = run(dispatch_event(text("0912345678"), ctx))
    assert member.state.step == RegistrationStep.AWAITING_CARD
    assert member.phone == "0912345678"
    assert gateway.last_texts() == [ASK_CARD_MESSAGE]

    member = run(dispatch_event(text("abc"), ctx))
    assert member.state.step == RegistrationStep.AWAITING_CARD
    assert gateway.last_texts() == [INVALID_CARD_MESSAGE]

    member = run(dispatch_event(text("A1B2C3"), ctx))
    assert member.state.step == RegistrationStep.AWAITING_PHOTO

    member = run(dispatch_event(image("m1"), ctx))
    assert member.state.step == RegistrationStep.REGISTERED
    assert member.qr_code_url
    menu = gateway.last_messages()[-1]
    assert member.qr_code_url in flex_uris(menu)

    run(dispatch_event(postback(PostbackAction.MY_QR), ctx))
    assert gateway.last_messages()[0]["originalContentUrl"] == member.qr_code_url


def test_full_width_phone_is_rejected(ctx, store, gateway):
    run(dispatch_event(follow(), ctx))

    member = run(dispatch_event(text("09１２３４５６７８"), ctx))

    assert member.state.step == RegistrationStep.AWAITING_PHONE
    assert member.phone is None
    assert gateway.last_texts() == [INVALID_PHONE_MESSAGE]


def test_event_log_names_current_step(ctx, caplog):
    run(dispatch_event(follow(), ctx))

    with caplog.at_level(logging.INFO, logger="memberpass"):
        run(dispatch_event(text("0912345678"), ctx))

    assert any("at Enter phone (1/3)" in record.getMessage() for record in caplog.records)


def test_replayed_registration_reuses_qr_artifact(ctx, artifacts):
    first = complete_registration(ctx)
    run(dispatch_event(text("重新註冊"), ctx))
    second = complete_registration(ctx)

    qr_keys = [key for key in artifacts.uploads if key[0] == settings.QR_CODE_FOLDER]
    assert qr_keys == [(settings.QR_CODE_FOLDER, f"member_{first.member_id}")]
    assert first.qr_code_url == second.qr_code_url
    assert first.member_id == second.member_id


def test_restart_clears_member(ctx, store):
    complete_registration(ctx)
    member = run(dispatch_event(text("re-register"), ctx))

    assert member.state == state(RegistrationStep.AWAITING_PHONE)
    assert (member.phone, member.card_number, member.photo_url, member.qr_code_url) == (None, None, None, None)


def test_upload_failure_leaves_state_and_apologizes(ctx, store, gateway, artifacts):
    run(dispatch_event(follow(), ctx))
    run(dispatch_event(text("0912345678"), ctx))
    run(dispatch_event(text("A1B2C3"), ctx))

    artifacts.fail_upload = True
    assert run(dispatch_event(image("m1"), ctx)) is None
    assert store.find("U1").state == state(RegistrationStep.AWAITING_PHOTO)
    assert gateway.last_texts() == [ERROR_RETRY_MESSAGE]

    # Resending the same image redrives the transition
    artifacts.fail_upload = False
    member = run(dispatch_event(image("m1"), ctx))
    assert member.state == state(RegistrationStep.REGISTERED)


def test_reply_failure_keeps_update(ctx, store, gateway):
    run(dispatch_event(follow(), ctx))
    gateway.fail_reply = True

    assert run(dispatch_event(text("0912345678"), ctx)) is None
    assert store.find("U1").state == state(RegistrationStep.AWAITING_CARD)


def test_profile_failure_uses_blank_name(ctx, store, gateway):
    gateway.fail_profile = True
    run(dispatch_event(follow(), ctx))

    assert store.find("U1").display_name == ""
    assert store.find("U1").state == state(RegistrationStep.AWAITING_PHONE)


def test_unknown_member_is_silently_dropped(ctx, store, gateway):
    assert run(dispatch_event(text("0912345678", user="U404"), ctx)) is None
    assert store.members == {}
    assert gateway.replies == []


def test_unhandled_event_is_ignored(ctx, gateway):
    event = InboundEvent(kind=EventKind.UNHANDLED, line_user_id="U1", reply_token="rt")
    assert run(dispatch_event(event, ctx)) is None
    assert gateway.replies == []


def test_confirm_flow_through_dispatcher(ctx, store):
    registered(store)
    run(dispatch_event(postback(PostbackAction.EDIT_PHONE), ctx))
    member = run(dispatch_event(text("0987654321"), ctx))
    assert member.state == state(RegistrationStep.REGISTERED, "0987654321")

    member = run(dispatch_event(postback(PostbackAction.CONFIRM_PHONE_NO), ctx))
    assert member.phone == "0912345678"
    assert member.state.pending_phone is None

    run(dispatch_event(postback(PostbackAction.EDIT_PHONE), ctx))
    run(dispatch_event(text("0987654321"), ctx))
    member = run(dispatch_event(postback(PostbackAction.CONFIRM_PHONE_YES), ctx))
    assert member.phone == "0987654321"
    assert member.state == state(RegistrationStep.REGISTERED)


# ============================================================
# CONCURRENCY
# ============================================================

def slow_context():
    calls = []
    return FlowContext(
        store=InMemoryMemberStore(calls, latency=0.001),
        gateway=FakeMessagingGateway(calls),
        artifacts=FakeArtifactService(calls),
    )


def test_same_member_events_are_serialized_in_order():
    ctx = slow_context()
    ctx.store.add("U1")

    run(dispatch_events([text("0912345678"), text("0987654321")], ctx))

    member = ctx.store.find("U1")
    # Second message was handled in AWAITING_CARD, where it is a valid card number
    assert member.phone == "0912345678"
    assert member.card_number == "0987654321"
    assert member.state == state(RegistrationStep.AWAITING_PHOTO)


def test_concurrent_follows_create_one_member():
    ctx = slow_context()

    run(dispatch_events([follow(token="a"), follow(token="b")], ctx))

    assert len(ctx.store.members) == 1
    assert len(ctx.gateway.replies) == 2


def test_different_members_run_independently():
    ctx = slow_context()
    users = [f"U{i}" for i in range(5)]

    run(dispatch_events([follow(user) for user in users], ctx))
    results = run(dispatch_events([text("0912345678", user) for user in users], ctx))

    assert [member.state.step for member in results] == [RegistrationStep.AWAITING_CARD] * 5
    assert len(ctx.locks) == 0


def test_lock_is_held_during_processing():
    ctx = slow_context()
    ctx.store.add("U1")
    observed = []

    original = ctx.store.update

    async def spying_update(member_id, changes):
        observed.append(ctx.locks.is_locked("U1"))
        return await original(member_id, changes)

    ctx.store.update = spying_update
    run(dispatch_event(text("0912345678"), ctx))

    assert observed == [True]
    assert not ctx.locks.is_locked("U1")


def test_one_failing_member_does_not_stop_batch():
    ctx = slow_context()
    ctx.store.add("U1", state=state(RegistrationStep.AWAITING_PHOTO))
    ctx.store.add("U2")
    ctx.artifacts.fail_upload = True

    results = run(dispatch_events([image("m1", "U1"), text("0912345678", "U2")], ctx))

    assert results[0] is None
    assert results[1].state == state(RegistrationStep.AWAITING_CARD)

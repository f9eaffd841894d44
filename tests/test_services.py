"""
LINE and Cloudinary clients against httpx.MockTransport, plus the Mongo store over fakes.
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta

import httpx
import pytest
from linebot.v3.webhook import SignatureValidator
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import settings
from app.core.exceptions import ExternalServiceError, MemberStoreError, ResourceNotFoundError
from app.flow.handlers.restart import STALE_STEPS
from app.flow.states import MemberState, RegistrationStep
from app.services.artifact_service import CloudinaryArtifactService, cloudinary_signature, render_qr_png
from app.services.line_service import LineMessagingService, verify_line_signature
from app.services.member_service import MongoMemberStore
from utils.line_utils import create_text_message

from conftest import run


def sign(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


# ============================================================
# SIGNATURE
# ============================================================

def test_valid_signature():
    body = b'{"events":[]}'
    assert verify_line_signature(body, sign(body, "secret"), "secret")


def test_invalid_signature():
    body = b'{"events":[]}'
    assert not verify_line_signature(body, sign(body, "other"), "secret")
    assert not verify_line_signature(body, None, "secret")
    assert not verify_line_signature(body + b" ", sign(body, "secret"), "secret")


def test_signature_over_utf8_body():
    body = json.dumps({"events": [{"message": {"text": "我的資訊"}}]}, ensure_ascii=False).encode("utf-8")
    assert verify_line_signature(body, sign(body, "secret"), "secret")
    assert SignatureValidator("secret").validate(body.decode("utf-8"), sign(body, "secret"))


def test_signature_rejects_non_utf8_body():
    body = b"\xff\xfe"
    assert not verify_line_signature(body, sign(body, "secret"), "secret")


# ============================================================
# LINE
# ============================================================

def line_service(handler):
    return LineMessagingService(
        access_token="token",
        api_base_url="https://api.line.test",
        data_api_base_url="https://data.line.test",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_reply_posts_messages_with_bearer_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={})

    messages = [create_text_message(str(i)) for i in range(6)]
    run(line_service(handler).reply("rt", messages))

    request = seen[0]
    assert request.url == "https://api.line.test/v2/bot/message/reply"
    assert request.headers["Authorization"] == "Bearer token"
    body = json.loads(request.content)
    assert body["replyToken"] == "rt"
    assert len(body["messages"]) == 5


def test_push_targets_user():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={})

    run(line_service(handler).push("U1", [create_text_message("hi")]))
    assert seen == [{"to": "U1", "messages": [create_text_message("hi")]}]


def test_get_profile():
    def handler(request):
        assert request.url.path == "/v2/bot/profile/U1"
        return httpx.Response(200, json={"userId": "U1", "displayName": "小明", "pictureUrl": "https://p"})

    profile = run(line_service(handler).get_profile("U1"))
    assert profile.display_name == "小明"
    assert profile.picture_url == "https://p"


def test_get_media_content_uses_data_api():
    def handler(request):
        assert request.url.host == "data.line.test"
        assert request.url.path == "/v2/bot/message/325708/content"
        return httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/jpeg"})

    media = run(line_service(handler).get_media_content("325708"))
    assert media.content == b"\xff\xd8jpeg"
    assert media.content_type == "image/jpeg"


def test_line_error_status_raises():
    service = line_service(lambda request: httpx.Response(400, json={"message": "Invalid reply token"}))

    with pytest.raises(ExternalServiceError) as exc_info:
        run(service.reply("rt", [create_text_message("hi")]))
    assert exc_info.value.details["status_code"] == 400


def test_line_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExternalServiceError):
        run(line_service(handler).get_profile("U1"))


# ============================================================
# CLOUDINARY
# ============================================================

def cloudinary(handler):
    return CloudinaryArtifactService(
        cloud_name="demo",
        api_key="key",
        api_secret="secret",
        api_base_url="https://cloudinary.test/v1_1",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_signature_matches_sorted_params():
    params = {"timestamp": 1700000000, "public_id": "member_1", "folder": "line_qrcodes", "overwrite": "true"}
    expected = hashlib.sha1(
        b"folder=line_qrcodes&overwrite=true&public_id=member_1&timestamp=1700000000secret"
    ).hexdigest()
    assert cloudinary_signature(params, "secret") == expected


def test_upload_returns_secure_url():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"secure_url": "https://res.cloudinary.com/demo/line_qrcodes/member_1.png"})

    url = run(cloudinary(handler).upload(b"png", "line_qrcodes", "member_1"))

    assert url == "https://res.cloudinary.com/demo/line_qrcodes/member_1.png"
    request = seen[0]
    assert request.url == "https://cloudinary.test/v1_1/demo/image/upload"
    body = request.content
    for field in (b'name="public_id"', b"member_1", b'name="signature"', b'name="overwrite"'):
        assert field in body


def test_upload_error_raises():
    service = cloudinary(lambda request: httpx.Response(401, json={"error": {"message": "Invalid Signature"}}))

    with pytest.raises(ExternalServiceError):
        run(service.upload(b"png", "line_qrcodes", "member_1"))


def test_upload_requires_configuration(monkeypatch):
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", None)
    service = CloudinaryArtifactService(cloud_name=None, api_key="key", api_secret="secret")

    with pytest.raises(ExternalServiceError) as exc_info:
        run(service.upload(b"png", "line_qrcodes", "member_1"))
    assert exc_info.value.code == "STORAGE_NOT_CONFIGURED"


def test_render_qr_png():
    png = render_qr_png("https://members.test/member/1", size=300)
    assert png.startswith(b"\x89PNG")


def test_generate_code_runs_off_loop():
    service = cloudinary(lambda request: httpx.Response(200, json={}))
    png = run(service.generate_code("https://members.test/member/1", 200))
    assert png.startswith(b"\x89PNG")


# ============================================================
# MONGO MEMBER STORE
# ============================================================

def _matches(doc, query):
    for key, condition in query.items():
        value = doc.get(key)
        if isinstance(condition, dict):
            if "$in" in condition and value not in condition["$in"]:
                return False
            if "$lt" in condition and not (value is not None and value < condition["$lt"]):
                return False
        elif value != condition:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return [dict(doc) for doc in self.docs]


class FakeCollection:
    def __init__(self, unique=(), fail=False):
        self.docs = []
        self.unique = unique
        self.fail = fail

    def _check(self):
        if self.fail:
            raise PyMongoError("connection reset")

    async def find_one(self, query):
        self._check()
        for doc in self.docs:
            if _matches(doc, query):
                return dict(doc)
        return None

    async def insert_one(self, doc):
        self._check()
        for field in self.unique:
            if any(existing.get(field) == doc.get(field) for existing in self.docs):
                raise DuplicateKeyError(f"duplicate {field}")
        self.docs.append(dict(doc))

    async def find_one_and_update(self, query, update, upsert=False, return_document=None):
        self._check()
        doc = next((doc for doc in self.docs if _matches(doc, query)), None)
        if doc is None:
            if not upsert:
                return None
            doc = dict(query)
            self.docs.append(doc)
        doc.update(update.get("$set", {}))
        for field, amount in update.get("$inc", {}).items():
            doc[field] = doc.get(field, 0) + amount
        return dict(doc)

    def find(self, query):
        self._check()
        return FakeCursor([doc for doc in self.docs if _matches(doc, query)])


def mongo_store(fail=False):
    return MongoMemberStore(
        members=FakeCollection(unique=("line_user_id", "member_id"), fail=fail),
        counters=FakeCollection(),
    )


def test_insert_assigns_sequential_ids():
    store = mongo_store()
    first = run(store.insert("U1", "小明"))
    second = run(store.insert("U2", ""))

    assert (first.member_id, second.member_id) == (1, 2)
    assert first.state == MemberState(RegistrationStep.AWAITING_PHONE)
    assert store.members.docs[0]["state"] == int(RegistrationStep.AWAITING_PHONE)


def test_insert_existing_user_returns_member():
    store = mongo_store()
    first = run(store.insert("U1", "小明"))
    again = run(store.insert("U1", "other"))

    assert again.member_id == first.member_id
    assert len(store.members.docs) == 1


def test_update_flattens_state():
    store = mongo_store()
    member = run(store.insert("U1", "小明"))

    updated = run(store.update(member.member_id, {
        "phone": "0912345678",
        "state": MemberState(RegistrationStep.REGISTERED, pending_phone="0987654321"),
    }))

    doc = store.members.docs[0]
    assert doc["state"] == 0
    assert doc["pending_phone"] == "0987654321"
    assert updated.state.confirm_pending
    assert updated.phone == "0912345678"


def test_update_rejects_unknown_fields():
    store = mongo_store()
    member = run(store.insert("U1", "小明"))

    with pytest.raises(ValueError):
        run(store.update(member.member_id, {"line_user_id": "U2"}))


def test_update_missing_member():
    with pytest.raises(ResourceNotFoundError):
        run(mongo_store().update(99, {"phone": "0912345678"}))


def test_find_stale_filters_state_and_age():
    store = mongo_store()
    now = datetime(2024, 5, 1, 12, 0)
    for user, step, age in [("U1", 2, 30), ("U2", 3, 1), ("U3", 0, 30), ("U4", 3, 48)]:
        member = run(store.insert(user, ""))
        store.members.docs[member.member_id - 1].update(
            {"state": step, "last_active_at": now - timedelta(hours=age)}
        )

    stale = run(store.find_stale(STALE_STEPS, now - timedelta(hours=24)))
    assert sorted(member.line_user_id for member in stale) == ["U1", "U4"]


def test_driver_errors_become_store_errors():
    with pytest.raises(MemberStoreError):
        run(mongo_store(fail=True).get_by_external_id("U1"))

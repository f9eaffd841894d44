import pytest
from datetime import datetime, timedelta

from utils.validation_utils import (
    is_cancel_command,
    is_restart_command,
    mask_phone,
    match_edit_field,
    sanitize_input,
    validate_card_number,
    validate_phone_number,
)
from utils.time_utils import format_date, is_registration_stale


@pytest.mark.parametrize("phone", ["0912345678", "0987654321", "0900000000"])
def test_valid_phones(phone):
    assert validate_phone_number(phone)


@pytest.mark.parametrize("phone", [
    "", "0812345678", "091234567", "09123456789", "+886912345678", "09l2345678",
    "0912345678\n",
    "09１２３４５６７８",
    "０９１２３４５６７８",
    "09\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668",
])
def test_invalid_phones(phone):
    assert not validate_phone_number(phone)


@pytest.mark.parametrize("card", ["A1B2C3", "12345", "abcde", "ZZZZZZZZZZZZ"])
def test_valid_cards(card):
    assert validate_card_number(card)


@pytest.mark.parametrize("card", ["", "abc", "1234", "A1-B2-C3", "A1B2 C3", "卡號12345"])
def test_invalid_cards(card):
    assert not validate_card_number(card)


def test_sanitize_input():
    assert sanitize_input("  hi \n") == "hi"
    assert sanitize_input("　重新註冊　") == "重新註冊"
    assert sanitize_input(None) == ""


def test_commands():
    assert is_restart_command("重新註冊")
    assert is_restart_command(" Re-Register ")
    assert not is_restart_command("註冊")
    assert is_cancel_command("取消")
    assert is_cancel_command("CANCEL")
    assert not is_cancel_command("不要取消了")


@pytest.mark.parametrize("text, field", [
    ("電話", "phone"),
    ("改手機號碼", "phone"),
    ("卡號", "card_number"),
    ("會員卡", "card_number"),
    ("照片", "photo_url"),
    ("PHOTO", "photo_url"),
    ("地址", None),
    ("", None),
])
def test_match_edit_field(text, field):
    assert match_edit_field(text) == field


def test_mask_phone():
    assert mask_phone("0912345678") == "0912***678"
    assert mask_phone(None) == ""


def test_format_date_uses_taipei_time():
    # 20:00 UTC is already the next day in Taipei
    assert format_date(datetime(2024, 1, 31, 20, 0)) == "2024/02/01"
    assert format_date(None) == "N/A"


def test_is_registration_stale():
    now = datetime(2024, 5, 1, 12, 0)
    assert is_registration_stale(now - timedelta(hours=25), now, 24)
    assert not is_registration_stale(now - timedelta(hours=23), now, 24)
    assert is_registration_stale(None, now, 24)

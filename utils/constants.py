"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages (zh-TW, matching the LINE official account)
- Button labels and postback tokens
- Chat command vocabularies

(Prevents hardcoding across the codebase)
"""

# ============================================================
# POSTBACK TOKENS
# ============================================================

POSTBACK_MY_QR = "my_qr"
POSTBACK_MY_INFO = "my_info"
POSTBACK_EDIT_INFO = "edit_info"
POSTBACK_EDIT_PHONE = "edit_phone"
POSTBACK_EDIT_CARD = "edit_card"
POSTBACK_EDIT_PHOTO = "edit_photo"
POSTBACK_CONFIRM_PHONE_YES = "confirm_phone_yes"
POSTBACK_CONFIRM_PHONE_NO = "confirm_phone_no"

# Rich menu labels that users may also type by hand
TEXT_POSTBACK_ALIASES = {
    "我的專屬 QR": POSTBACK_MY_QR,
    "我的專屬QR": POSTBACK_MY_QR,
    "我的QR": POSTBACK_MY_QR,
    "我的資訊": POSTBACK_MY_INFO,
    "修改資料": POSTBACK_EDIT_INFO,
    "修改電話": POSTBACK_EDIT_PHONE,
}

# ============================================================
# COMMAND VOCABULARIES
# ============================================================

RESTART_COMMANDS = {"重新註冊", "re-register"}

CANCEL_COMMANDS = {"取消", "cancel"}

# Ordered (keyword, member field) pairs; first match wins
EDIT_FIELD_KEYWORDS = [
    ("電話", "phone"),
    ("手機", "phone"),
    ("phone", "phone"),
    ("卡號", "card_number"),
    ("會員卡", "card_number"),
    ("card", "card_number"),
    ("照片", "photo_url"),
    ("相片", "photo_url"),
    ("photo", "photo_url"),
]

# ============================================================
# WELCOME & ONBOARDING
# ============================================================

WELCOME_MESSAGE = "🎉 歡迎加入會員{name}！"

WELCOME_BACK_MESSAGE = "👋 歡迎回來{name}！您已完成會員註冊。"

ASK_PHONE_MESSAGE = """📞 步驟 1/3

請輸入您的聯絡電話，以完成會員資料。
例如：0912345678"""

INVALID_PHONE_MESSAGE = """⚠️ 請輸入正確的手機格式

需為 09 開頭的 10 位數字，例如：0912345678"""

ASK_CARD_MESSAGE = """💳 步驟 2/3

已收到您的電話 ✅
請輸入您的會員卡號（至少 5 碼英文或數字）。"""

ASK_CARD_NO_PHOTO_MESSAGE = """💳 步驟 2/2

已收到您的電話 ✅
請輸入您的會員卡號（至少 5 碼英文或數字）。"""

INVALID_CARD_MESSAGE = """⚠️ 會員卡號格式不正確

請輸入至少 5 碼的英文或數字，例如：A1B2C3"""

ASK_PHOTO_MESSAGE = """📷 步驟 3/3

已收到您的會員卡號 ✅
請傳送一張您的個人照片，用於現場身分核對。"""

PHOTO_REQUIRED_MESSAGE = "📷 請直接傳送一張照片（圖片訊息）以完成註冊。"

REGISTRATION_COMPLETE_MESSAGE = """✅ 註冊完成！

您的專屬會員 QR Code 已產生，
到店時出示即可完成身分核對。"""

RESTART_MESSAGE = """🔄 已清除您的會員資料，重新開始註冊。

請輸入您的聯絡電話（例如：0912345678）。"""

# ============================================================
# MEMBER MENU
# ============================================================

MENU_ALT_TEXT = "會員功能選單"
MENU_TITLE = "🎯 會員功能選單"
BUTTON_MY_QR = "我的QR"
BUTTON_MY_INFO = "我的資訊"
BUTTON_EDIT_INFO = "修改資料"
BUTTON_VIEW_QR = "查看 QR Code"
BUTTON_COMMUNITY = "加入社群"

MENU_HINT_MESSAGE = "👇 請使用下方選單操作會員功能。"

QR_NOT_READY_MESSAGE = "⚠️ 尚未產生專屬 QR Code，請先完成會員註冊。"

NOT_REGISTERED_MESSAGE = "⚠️ 您尚未完成會員註冊，請依照提示完成資料填寫。"

INFO_CARD_ALT_TEXT = "我的會員資訊"
INFO_CARD_TITLE = "【我的會員資訊】"
INFO_NOT_SET = "未設定"

INFO_MISSING_PHONE_MESSAGE = "📞 您的會員資料尚缺聯絡電話，請輸入電話（例如：0912345678）。"

# ============================================================
# EDIT FLOW
# ============================================================

EDIT_MENU_MESSAGE = """✏️ 請問要修改哪一項資料？

請點選下方按鈕，或輸入「電話」、「卡號」、「照片」。
輸入「取消」可離開修改。"""

EDIT_MENU_UNKNOWN_MESSAGE = """🤔 無法辨識要修改的項目。

請輸入「電話」、「卡號」或「照片」，或輸入「取消」離開。"""

BUTTON_EDIT_PHONE = "電話"
BUTTON_EDIT_CARD = "卡號"
BUTTON_EDIT_PHOTO = "照片"
BUTTON_CANCEL = "取消"

EDIT_PHONE_PROMPT = "📞 請輸入您的新聯絡電話（例如：0912345678）"
EDIT_CARD_PROMPT = "💳 請輸入新的會員卡號（至少 5 碼英文或數字）"
EDIT_PHOTO_PROMPT = "📷 請傳送一張新的個人照片"

EDIT_NOT_AVAILABLE_MESSAGE = "⚠️ 請先完成會員註冊，才能修改資料。"

EDIT_CANCELLED_MESSAGE = "👌 已取消修改，資料維持不變。"

PHONE_UPDATED_MESSAGE = "✅ 您的電話已更新為：{phone}"
PHONE_UNCHANGED_MESSAGE = "ℹ️ 新電話與目前資料相同（{phone}），無需修改。"
CARD_UPDATED_MESSAGE = "✅ 您的會員卡號已更新為：{card_number}"
PHOTO_UPDATED_MESSAGE = "✅ 您的個人照片已更新。"

CONFIRM_PHONE_ALT_TEXT = "確認修改電話"
CONFIRM_PHONE_MESSAGE = "確定要將電話由 {old_phone} 修改為 {new_phone} 嗎？"
BUTTON_YES = "是"
BUTTON_NO = "否"
CONFIRM_PENDING_REMINDER = "⚠️ 請先回覆是否確認修改電話。"
CONFIRM_PHONE_CANCELLED_MESSAGE = "👌 已取消修改，電話維持：{phone}"
NOTHING_TO_CONFIRM_MESSAGE = "ℹ️ 目前沒有待確認的修改。"

# ============================================================
# ERRORS
# ============================================================

ERROR_RETRY_MESSAGE = "❌ 系統忙碌中，請稍後再傳送一次。"

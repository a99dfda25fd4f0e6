from typing import Dict, Any

DEFAULT_LOCALE = "en"

TRANSLATIONS: Dict[str, Dict[str, Any]] = {
    "en": {
        "errors": {
            "validation_error": "Validation Error",
            "rate_limited": "Too many OTP requests. Please try again later.",
            "delivery_failed": "Failed to send OTP email. Please try again.",
            "invalid_otp": "Invalid or expired OTP code",
            "otp_blocked": "OTP blocked due to too many failed attempts",
            "identity_conflict": "Account could not be created, please try again",
            "store_unavailable": "Service temporarily unavailable, please try again later",
            "invalid_credentials": "Invalid email or password",
            "user_exists": "User already exists",
            "user_not_found": "User not found",
            "unauthorized": "Authentication required",
            "internal_error": "Internal Server Error"
        },
        "success": {
            "otp_sent": "OTP sent successfully",
            "otp_verified": "Authentication successful",
            "otp_status": "OTP status retrieved successfully",
            "register_success": "User registered successfully",
            "login_success": "Login successful",
            "profile": "User retrieved successfully"
        }
    },
    "zh-TW": {
        "errors": {
            "validation_error": "請求參數錯誤",
            "rate_limited": "驗證碼請求過於頻繁，請稍後再試",
            "delivery_failed": "驗證碼郵件發送失敗，請重試",
            "invalid_otp": "驗證碼錯誤或已過期",
            "otp_blocked": "驗證碼嘗試次數過多，請重新獲取",
            "identity_conflict": "帳戶建立失敗，請重試",
            "store_unavailable": "服務暫時不可用，請稍後再試",
            "invalid_credentials": "郵箱或密碼錯誤",
            "user_exists": "該郵箱已註冊，請直接登入",
            "user_not_found": "找不到用戶",
            "unauthorized": "未授權訪問",
            "internal_error": "系統錯誤，請稍後再試"
        },
        "success": {
            "otp_sent": "驗證碼已發送到您的郵箱",
            "otp_verified": "登入成功",
            "otp_status": "已取得驗證碼狀態",
            "register_success": "註冊成功",
            "login_success": "登入成功",
            "profile": "已取得用戶資料"
        }
    }
}


def t(key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
    """
    Get translated text for the given key and locale.

    Args:
        key: Dot-notation key (e.g., "errors.invalid_otp")
        locale: Language code (en or zh-TW)
        **kwargs: Format parameters for string interpolation

    Returns:
        Translated text, or the key itself if not found
    """
    keys = key.split(".")
    value = TRANSLATIONS.get(locale, TRANSLATIONS[DEFAULT_LOCALE])

    for k in keys:
        if isinstance(value, dict):
            value = value.get(k, key)
        else:
            return key

    # Handle string interpolation
    if isinstance(value, str) and kwargs:
        try:
            return value.format(**kwargs)
        except KeyError:
            return value

    return value if isinstance(value, str) else key


def get_locale_from_header(accept_language: str | None) -> str:
    """
    Extract locale from Accept-Language header.

    Args:
        accept_language: Accept-Language header value

    Returns:
        Locale code (en or zh-TW), defaults to en
    """
    if not accept_language:
        return DEFAULT_LOCALE

    # Parse Accept-Language header (e.g., "zh-TW,en;q=0.9")
    languages = accept_language.split(",")
    for lang in languages:
        locale = lang.split(";")[0].strip()
        if locale in TRANSLATIONS:
            return locale

    return DEFAULT_LOCALE

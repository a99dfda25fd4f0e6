"""安全模块 - 密码哈希、JWT 会话令牌、验证码生成"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

PBKDF2_ITERATIONS = 100000


def hash_password(password: str) -> str:
    """哈希密码"""
    salt = secrets.token_hex(16)
    pwd_hash = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${pwd_hash.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    """验证密码"""
    try:
        salt, pwd_hash = hashed.split("$")
    except ValueError:
        return False
    new_hash = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(new_hash.hex(), pwd_hash)


def generate_otp_code(length: int = 6) -> str:
    """
    生成数字验证码

    在 [10^(length-1), 10^length - 1] 内均匀取值（首位不为 0），
    使用 secrets 模块保证不可预测。
    """
    lower = 10 ** (length - 1)
    return str(lower + secrets.randbelow(9 * lower))


@dataclass(frozen=True)
class IssuedToken:
    """已签发的会话令牌"""

    token: str
    expires_at: datetime


class TokenIssuer:
    """JWT 会话令牌签发与校验"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: int, email: str) -> IssuedToken:
        """生成 JWT token"""
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=self.expire_minutes)

        payload = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": expires_at,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, expires_at=expires_at)

    def decode(self, token: str) -> dict[str, Any]:
        """
        校验并解析 JWT token

        Raises:
            jwt.PyJWTError: token 无效或已过期
        """
        return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])

"""安全模块：解析上游认证系统签发的 JWT，得到当前请求的访问主体。

认证与会话由外部系统负责，本服务只关心“是否为已认证用户”以及其 id/email/role。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from .config import get_settings
from .logger import logger


@dataclass(frozen=True)
class Principal:
    """已认证的访问主体。"""

    id: str
    email: str
    role: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or self.email or "unknown"


def create_access_token(subject: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """根据传入载荷生成带有过期时间的签名 JWT。"""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = subject.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """解析并校验 JWT（含过期时间），合法时返回载荷，否则返回 ``None``。"""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:  # pragma: no cover - logging side effect
        logger.warning("Failed to decode JWT: %s", exc)
        return None


def principal_from_payload(payload: Dict[str, Any]) -> Optional[Principal]:
    """从 JWT 载荷中提取访问主体；缺少用户标识时视为未认证。"""
    user_id = payload.get("sub") or payload.get("user_id")
    if user_id is None:
        return None
    return Principal(
        id=str(user_id),
        email=str(payload.get("email") or ""),
        role=str(payload.get("role") or "member").strip().lower(),
        name=payload.get("name"),
    )

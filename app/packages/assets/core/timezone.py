"""时间格式化：接口中的时间统一按配置时区输出 ISO-8601 字符串。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.assets.core.config import get_settings

_UTC = ZoneInfo("UTC")


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 读回的无时区时间按 UTC 解释，再换算到配置时区。"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=_UTC)
    return value.astimezone(get_settings().timezone_info)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    localized = to_local(value)
    return localized.isoformat() if localized is not None else None

"""时区工具方法：节点时间戳按配置时区对外展示。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.drive.core.config import get_settings


def get_timezone() -> ZoneInfo:
    return get_settings().timezone_info


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区；SQLite 读回的无时区时间按 UTC 处理。"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo("UTC"))
    return value.astimezone(get_timezone())


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """将时间格式化为 ISO-8601 字符串，空值原样返回。"""
    localized = to_local(value)
    if localized is None:
        return None
    return localized.isoformat(timespec="seconds")


def format_timestamp(seconds: float) -> str:
    """将文件系统的 mtime（epoch 秒）格式化为配置时区的 ISO-8601 字符串。"""
    return datetime.fromtimestamp(seconds, get_timezone()).isoformat(timespec="seconds")

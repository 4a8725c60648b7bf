"""共享工具函数。"""
from __future__ import annotations

from datetime import datetime, timezone


def now_rfc3339() -> str:
    """返回当前 UTC 时间的 RFC3339 字符串（毫秒精度，以 Z 结尾）。"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_newlines(text: str) -> str:
    """把 CR-LF 统一为 LF（其它字符保持不变）。"""
    return (text or "").replace("\r\n", "\n")

"""
Edit Bridge 内部错误分类（异常类型）。

说明：
- 异常仅用于模块间传递“错误层级”语义；
- bridge 对外（host runtime / editor）永远不抛出致命错误：
  上层 handler 捕获后记录日志并降级（静默丢弃）。
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EditBridgeError(Exception):
    """Edit Bridge 错误基类（不建议直接抛出）。"""


class PatchApplyError(EditBridgeError):
    """unified diff 无法干净地应用到 base 文本上（context 不匹配、hunk 缺失等）。"""

    def __init__(self, message: str, *, hunk_index: Optional[int] = None) -> None:
        """
        创建 PatchApplyError。

        参数：
        - message：英文错误描述
        - hunk_index：失败的 hunk 序号（0-based；解析阶段失败时为 None）
        """

        super().__init__(message)
        self.message = message
        self.hunk_index = hunk_index

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        if self.hunk_index is None:
            return self.message
        return f"hunk #{self.hunk_index}: {self.message}"


class TransportError(EditBridgeError):
    """一次 TCP 发送尝试失败（connect/write/timeout）。"""


class FrameError(EditBridgeError):
    """wire 上的一行不是合法的 `file.edited` 事实（JSON 非法或字段缺失）。"""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = details or {}

"""
Side log：append-only 的行式诊断日志（只写，不被任何组件读取）。

行格式：
    <RFC3339 UTC 时间戳> <单行 JSON>\n

记录的事件：
- `{"missingFile": "<path>"}`：permission.asked 时 base 文件不存在
- `{"tcpSendFailed": {"file": "<path>"}}`：发送重试耗尽
- PendingEdit dict：一次性授权后被应用的编辑
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from edit_bridge.core.utils import now_rfc3339

logger = logging.getLogger(__name__)


@dataclass
class SideLog:
    """
    追加写的诊断日志。

    参数：
    - path：日志文件路径（目录按需创建）
    """

    path: Path

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self._lock = threading.Lock()

    def format_line(self, payload: Any) -> str:
        """把 payload 格式化为一行（带时间戳与换行）。"""

        return f"{now_rfc3339()} {json.dumps(payload, ensure_ascii=False, default=str)}\n"

    def append_sync(self, payload: Any) -> bool:
        """
        同步追加一行。

        返回：
        - True：写入成功
        - False：写入失败（已记录 logging 警告；bridge 不因诊断日志失败而中断）
        """

        line = self.format_line(payload)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line)
        except OSError:
            logger.warning("Failed to append side log %s", self.path, exc_info=True)
            return False
        return True

    async def append(self, payload: Any) -> bool:
        """异步追加一行（文件 I/O 在线程中执行，不阻塞事件循环）。"""

        return await asyncio.to_thread(self.append_sync, payload)

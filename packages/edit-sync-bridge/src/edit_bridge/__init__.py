"""
Edit Sync Bridge（Python）。

说明：
- 让“编辑文件的自动化 agent”与“需要实时反映编辑的编辑器”两个进程保持同步；
- Emitter 侧把工具事件 / unified diff 转成 EditFact（文件 + 完整新内容），
  按 Mode 决定立即发送或等待一次性授权；
- Receiver 侧通过 loopback TCP 接收事实并写入编辑器当前会话。
- 使用手册：`help/README.md`
"""

from __future__ import annotations

from edit_bridge.config.loader import BridgeConfig, load_config
from edit_bridge.core.contracts import EditFact, PendingEdit
from edit_bridge.emitter.handler import EditEventHandler
from edit_bridge.mode import Mode, resolve_mode
from edit_bridge.transport.receiver import FileEditedReceiver
from edit_bridge.transport.sender import FileEditedSender

__all__ = [
    "BridgeConfig",
    "EditEventHandler",
    "EditFact",
    "FileEditedReceiver",
    "FileEditedSender",
    "Mode",
    "PendingEdit",
    "__version__",
    "load_config",
    "resolve_mode",
]

__version__ = "0.3.0"

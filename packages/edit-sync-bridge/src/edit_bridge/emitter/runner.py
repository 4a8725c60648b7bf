"""
把 JSONL 事件流喂给 EditEventHandler（CLI `emit` 子命令使用）。

每行一个事件对象；空行跳过；非法 JSON 记录 warning 后跳过。
事件按到达顺序逐个 await（与 host runtime 的顺序分发一致）。
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable

from edit_bridge.emitter.handler import EditEventHandler

logger = logging.getLogger(__name__)


async def pump_events(handler: EditEventHandler, readline: Callable[[], str]) -> int:
    """
    持续读取并处理事件，直到 EOF。

    参数：
    - handler：事件处理组件
    - readline：阻塞式读行函数（例如 `sys.stdin.readline`；在线程中调用）

    返回：
    - 处理过的事件数量
    """

    handled = 0
    while True:
        raw = await asyncio.to_thread(readline)
        if not raw:
            break
        line = raw.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping invalid event line: %s", e)
            continue
        if not isinstance(event, dict):
            logger.warning("Skipping non-object event line")
            continue
        await handler.handle(event)
        handled += 1
    return handled

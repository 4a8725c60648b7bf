"""
Emitter 事件处理：生命周期事件 → EditFact → sender。

两条互斥分支（由启动时解析的 Mode 决定，进程内不变）：
- direct：`message.part.updated`（write completed / edit running）立即构造事实并发送；
- gated：`permission.asked` 计算补丁结果并暂存；`permission.replied`（reply == once）取出并发送。

错误处理：
- `handle()` 不因事件/数据问题抛异常（host runtime 不得因 bridge 失败）；
- diff 无可用路径：静默忽略；
- base 文件不存在：按空内容处理，并写 side log `missingFile`；
- 补丁无法应用：不创建 pending edit；
- 发送失败：由 sender 负责重试与记录；
- 其它意外异常：`handle()` 记录 exception 后吞掉，不影响后续事件。
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from edit_bridge.core.contracts import EditFact
from edit_bridge.diff.extractor import extract_diff_info
from edit_bridge.diff.reconciler import try_reconcile
from edit_bridge.emitter.events import (
    MESSAGE_PART_UPDATED,
    PERMISSION_ASKED,
    PERMISSION_REPLIED,
    REPLY_ONCE,
    STATUS_COMPLETED,
    STATUS_RUNNING,
    TOOL_EDIT,
    TOOL_WRITE,
    LifecycleEvent,
    MessagePartUpdated,
    PermissionAsked,
    PermissionReplied,
    ToolInput,
)
from edit_bridge.mode import Mode
from edit_bridge.state.pending import PendingEditStore
from edit_bridge.state.side_log import SideLog
from edit_bridge.transport.sender import SendOutcome

logger = logging.getLogger(__name__)


@runtime_checkable
class FactSender(Protocol):
    """发送适配层（生产实现为 `FileEditedSender`）。"""

    async def send(self, fact: EditFact) -> SendOutcome:
        """发送一条事实；失败不抛异常，返回 outcome。"""

        ...


def _read_text(path: Path) -> Optional[str]:
    """读取 UTF-8 文本（非法字节以 U+FFFD 替换）；不存在、不可读或路径非法时返回 None。"""

    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except (OSError, ValueError):
        return None


def _ensure_file(path: Path) -> None:
    """目标文件不存在时创建父目录与空文件（编辑器需要能打开它）。"""

    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")


class EditEventHandler:
    """
    Emitter 的事件处理组件（每进程构造一次，被所有事件回调共享）。

    参数：
    - mode：启动时解析的 Mode（只读）
    - sender：事实发送适配层
    - side_log：诊断日志（可选）
    - store：pending edit 存储（默认新建；由 handler 独占）
    """

    def __init__(
        self,
        *,
        mode: Mode,
        sender: FactSender,
        side_log: Optional[SideLog] = None,
        store: Optional[PendingEditStore] = None,
    ) -> None:
        self._mode = Mode(mode)
        self._sender = sender
        self._side_log = side_log
        self._store = store if store is not None else PendingEditStore()

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def store(self) -> PendingEditStore:
        return self._store

    async def _log(self, payload: Any) -> None:
        if self._side_log is not None:
            await self._side_log.append(payload)

    async def _send(self, fact: EditFact) -> SendOutcome:
        outcome = await self._sender.send(fact)
        if outcome.ok:
            logger.debug("Sent file.edited for %s (attempts=%d)", fact.file_path, outcome.attempts)
        return outcome

    async def handle(self, event: Mapping[str, Any]) -> None:
        """
        处理一个生命周期事件。

        参数：
        - event：`{"type": ..., "properties": {...}}`（runtime 原样传入）
        """

        try:
            envelope = LifecycleEvent.model_validate(event)
        except ValidationError:
            logger.debug("Ignoring malformed lifecycle event")
            return

        try:
            if envelope.type == MESSAGE_PART_UPDATED and self._mode is Mode.DIRECT:
                await self._on_part_updated(MessagePartUpdated.model_validate(envelope.properties))
            elif envelope.type == PERMISSION_ASKED and self._mode is Mode.GATED:
                await self._on_permission_asked(PermissionAsked.model_validate(envelope.properties))
            elif envelope.type == PERMISSION_REPLIED and self._mode is Mode.GATED:
                await self._on_permission_replied(PermissionReplied.model_validate(envelope.properties))
        except ValidationError as e:
            logger.debug("Ignoring %s event with unexpected properties: %s", envelope.type, e.error_count())
        except Exception:
            logger.exception("Failed to handle %s event", envelope.type)

    async def _on_part_updated(self, props: MessagePartUpdated) -> None:
        """direct 模式：write completed / edit running → 立即发送。"""

        part = props.part
        if part.type != "tool" or part.state is None:
            return
        state = part.state
        inp = state.input

        if part.tool == TOOL_WRITE and state.status == STATUS_COMPLETED:
            if not inp.file_path or inp.content is None:
                return
            await self._send(EditFact(file_path=inp.file_path, content_new=inp.content))
            return

        if part.tool == TOOL_EDIT and state.status == STATUS_RUNNING:
            content = await self._edited_content(inp)
            if content is None or not inp.file_path:
                return
            await self._send(EditFact(file_path=inp.file_path, content_new=content))

    async def _edited_content(self, inp: ToolInput) -> Optional[str]:
        """
        计算 edit 工具执行后的完整文件内容。

        规则：
        - oldString 为空：新内容即 newString（新建文件）；
        - 否则在当前磁盘内容中替换 oldString（replaceAll 时全部替换，否则首个）；
        - 文件缺失或 oldString 不存在：返回 None 并写 side log。
        """

        if not inp.file_path or inp.new_string is None:
            return None
        old = inp.old_string or ""
        if not old:
            return inp.new_string

        path = Path(inp.file_path)
        current = await asyncio.to_thread(_read_text, path)
        if current is None:
            await self._log({"missingFile": inp.file_path})
            return None
        if old not in current:
            normalized = current.replace("\r\n", "\n")
            if old not in normalized:
                await self._log({"editNotApplicable": {"file": inp.file_path}})
                return None
            current = normalized
        return current.replace(old, inp.new_string, -1 if inp.replace_all else 1)

    async def _on_permission_asked(self, props: PermissionAsked) -> None:
        """gated 模式：解析 diff → 读取 base → 应用补丁 → 暂存。"""

        diff_raw = props.metadata.diff
        if not diff_raw:
            return
        info = extract_diff_info(diff_raw)
        if info.file_path is None:
            return

        base = await asyncio.to_thread(_read_text, Path(info.file_path))
        if base is None:
            await self._log({"missingFile": info.file_path})
            base = ""

        content = try_reconcile(base, info.normalized_diff)
        if content is None:
            logger.debug("Diff for permission %s does not apply to %s", props.id, info.file_path)
            return
        self._store.put(props.id, info.file_path, content)

    async def _on_permission_replied(self, props: PermissionReplied) -> None:
        """gated 模式：reply == once 时取出 pending edit 并发送；其它 reply 保留记录。"""

        if props.reply != REPLY_ONCE:
            logger.debug("Permission %s replied %r; pending edit kept", props.request_id, props.reply)
            return
        pending = self._store.take(props.request_id)
        if pending is None:
            return

        try:
            await asyncio.to_thread(_ensure_file, Path(pending.file))
        except (OSError, ValueError) as e:
            logger.warning("Cannot create %s before applying edit: %s", pending.file, e)
        await self._log(pending.to_dict())
        await self._send(pending.to_fact())

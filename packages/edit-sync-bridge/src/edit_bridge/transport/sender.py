"""
Sender：把 EditFact 以单行 JSON 发往 loopback receiver。

语义：
- 每次 attempt 独立建连、写一行、关闭（不做连接池）；
- connect + write 共享同一个超时上限（默认 3s）；
- 最多 `max_attempts` 次；第 n 次失败且仍有剩余次数时等待 `backoff_ms × n`；
- 重试耗尽：写 side log `{"tcpSendFailed": {"file": ...}}`，返回失败 outcome，不抛异常
  （调用方是 host runtime 的事件回调，投递问题不得让它失败或阻塞）。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

from edit_bridge.config.loader import BridgeConfig
from edit_bridge.core.contracts import EditFact
from edit_bridge.core.errors import TransportError
from edit_bridge.state.side_log import SideLog
from edit_bridge.transport.framing import configure_stream_socket

logger = logging.getLogger(__name__)

OpenConnection = Callable[[str, int], Awaitable[Tuple[asyncio.StreamReader, Any]]]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """有界重试策略：最多 max_attempts 次，线性退避。"""

    max_attempts: int = 3
    backoff_ms: int = 200

    def delay_sec(self, attempt: int) -> float:
        """第 attempt 次（1-based）失败后的等待秒数。"""

        return self.backoff_ms * int(attempt) / 1000.0


@dataclass(frozen=True)
class SendOutcome:
    """一次 send 的结果（包含全部重试）。"""

    ok: bool
    attempts: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """转成 JSONable dict。"""

        obj: dict = {"ok": self.ok, "attempts": self.attempts}
        if self.error is not None:
            obj["error"] = self.error
        return obj


class FileEditedSender:
    """
    `file.edited` 事实发送端（Emitter 侧）。

    说明：
    - `open_connection` / `sleep` 可注入，便于离线回归重试与退避；
    - 多个 handler 并发 send 时各自建连，互不协调，也不保证到达顺序。
    """

    def __init__(
        self,
        *,
        host: str = "127.0.0.1",
        port: int = 41234,
        connect_timeout_sec: float = 3.0,
        keepalive_sec: float = 1.0,
        retry: Optional[RetryPolicy] = None,
        side_log: Optional[SideLog] = None,
        open_connection: Optional[OpenConnection] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        """
        创建 sender。

        参数：
        - host/port：receiver 监听地址（loopback）
        - connect_timeout_sec：单次 attempt 的 connect/write 超时
        - keepalive_sec：keep-alive 探测间隔
        - retry：重试策略（默认 3 次、200ms 线性退避）
        - side_log：重试耗尽时写入的诊断日志（可选）
        """

        self._host = str(host)
        self._port = int(port)
        self._timeout = float(connect_timeout_sec)
        self._keepalive_sec = float(keepalive_sec)
        self._retry = retry or RetryPolicy()
        self._side_log = side_log
        self._open_connection: OpenConnection = open_connection or asyncio.open_connection
        self._sleep: Sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(cls, cfg: BridgeConfig, *, side_log: Optional[SideLog] = None) -> "FileEditedSender":
        """按 `BridgeConfig.transport` 构造 sender。"""

        t = cfg.transport
        return cls(
            host=t.host,
            port=t.port,
            connect_timeout_sec=t.connect_timeout_sec,
            keepalive_sec=t.keepalive_sec,
            retry=RetryPolicy(max_attempts=t.max_attempts, backoff_ms=t.backoff_ms),
            side_log=side_log,
        )

    async def _attempt(self, data: bytes) -> None:
        """
        单次发送：建连 → 写一行 → 关闭。

        异常：
        - TransportError：connect/write 失败或超时
        """

        try:
            _reader, writer = await asyncio.wait_for(
                self._open_connection(self._host, self._port), timeout=self._timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"connect to {self._host}:{self._port} failed: {e!r}") from e

        try:
            configure_stream_socket(writer.get_extra_info("socket"), keepalive_sec=self._keepalive_sec)
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"write to {self._host}:{self._port} failed: {e!r}") from e
        finally:
            writer.close()
            with contextlib.suppress(OSError, asyncio.TimeoutError):
                await asyncio.wait_for(writer.wait_closed(), timeout=self._timeout)

    async def send(self, fact: EditFact) -> SendOutcome:
        """
        发送一条事实（含重试）。

        返回：
        - SendOutcome（ok=False 时已写 side log；不会抛异常）
        """

        data = fact.to_line()
        last_error: Optional[str] = None
        max_attempts = max(1, int(self._retry.max_attempts))
        for attempt in range(1, max_attempts + 1):
            try:
                await self._attempt(data)
                return SendOutcome(ok=True, attempts=attempt)
            except TransportError as e:
                last_error = str(e)
                logger.warning("file.edited send attempt %d/%d failed: %s", attempt, max_attempts, e)
            if attempt < max_attempts:
                await self._sleep(self._retry.delay_sec(attempt))

        logger.error("file.edited send gave up after %d attempts: %s", max_attempts, fact.file_path)
        if self._side_log is not None:
            await self._side_log.append({"tcpSendFailed": {"file": fact.file_path}})
        return SendOutcome(ok=False, attempts=max_attempts, error=last_error)

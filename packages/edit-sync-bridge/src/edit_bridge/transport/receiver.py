"""
Receiver：loopback TCP listener，按行重组并分发 `file.edited` 事实。

行为：
- 每个连接独立的 `LineBuffer`；每个 chunk 抽出完整行，逐行解析并分发；
- 非法行记录 warning 后丢弃，不关闭连接，也不影响后续行/其它连接；
- 连接 EOF 时把残留内容当作最后一行处理；
- 连接空闲超时（默认 5s）强制关闭（残留内容丢弃）；
- 分发为 fire-and-forget：写文件慢不会阻塞读循环或新连接的接入。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, List, Optional, Set

from edit_bridge.config.loader import BridgeConfig
from edit_bridge.core.contracts import EditFact, decode_fact_line
from edit_bridge.core.errors import FrameError
from edit_bridge.transport.framing import LineBuffer, configure_stream_socket

logger = logging.getLogger(__name__)

FactSink = Callable[[EditFact], Awaitable[None]]

_READ_CHUNK = 65536


class ConnectionHandler:
    """
    单连接的解析状态：字节 → 行 → EditFact → 回调。

    参数：
    - on_fact：同步回调（通常负责把分发调度为后台任务）
    - peer：对端描述（仅用于日志）
    """

    def __init__(self, *, on_fact: Callable[[EditFact], None], peer: str = "?") -> None:
        self._on_fact = on_fact
        self._peer = peer
        self._buffer = LineBuffer()
        self.dispatched = 0
        self.rejected = 0

    def _process_line(self, line: str) -> None:
        """解析一行；非法行计数并记录日志，其它类型的消息忽略。"""

        try:
            fact = decode_fact_line(line)
        except FrameError as e:
            self.rejected += 1
            logger.warning("Failed to parse TCP event from %s: %s", self._peer, e)
            return
        if fact is None:
            logger.debug("Ignoring non file.edited frame from %s", self._peer)
            return
        self.dispatched += 1
        self._on_fact(fact)

    def feed(self, data: bytes) -> List[str]:
        """处理一个 chunk，返回本次抽出的行。"""

        lines = self._buffer.feed(data)
        for line in lines:
            self._process_line(line)
        return lines

    def finish(self) -> List[str]:
        """连接 EOF：处理残留内容。"""

        lines = self._buffer.finish()
        for line in lines:
            self._process_line(line)
        return lines


class FileEditedReceiver:
    """
    `file.edited` 接收端（Receiver 侧）。

    用法：
        async with FileEditedReceiver(host=..., port=..., on_fact=agent.apply_fact) as rx:
            await rx.serve_forever()
    """

    def __init__(
        self,
        *,
        on_fact: FactSink,
        host: str = "127.0.0.1",
        port: int = 41234,
        idle_timeout_sec: float = 5.0,
        keepalive_sec: float = 1.0,
    ) -> None:
        self._on_fact = on_fact
        self._host = str(host)
        self._port = int(port)
        self._idle_timeout = float(idle_timeout_sec)
        self._keepalive_sec = float(keepalive_sec)
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set["asyncio.Task[None]"] = set()

    @classmethod
    def from_config(cls, cfg: BridgeConfig, *, on_fact: FactSink) -> "FileEditedReceiver":
        """按 `BridgeConfig.transport` 构造 receiver。"""

        t = cfg.transport
        return cls(
            on_fact=on_fact,
            host=t.host,
            port=t.port,
            idle_timeout_sec=t.idle_timeout_sec,
            keepalive_sec=t.keepalive_sec,
        )

    @property
    def port(self) -> int:
        """实际监听端口（配置端口为 0 时由系统分配）。"""

        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self._port

    async def start(self) -> None:
        """开始监听（重复调用无副作用）。"""

        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_connection, self._host, self._port)
        logger.info("Listening for file.edited on %s:%s", self._host, self.port)

    async def serve_forever(self) -> None:
        """阻塞直到 listener 被关闭。"""

        await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        """关闭 listener（已调度的分发任务继续执行）。"""

        if self._server is None:
            return
        self._server.close()
        with contextlib.suppress(asyncio.CancelledError):
            await self._server.wait_closed()
        self._server = None

    async def drain(self) -> None:
        """等待所有已调度的分发任务结束（测试与优雅退出使用）。"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> "FileEditedReceiver":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    def _schedule(self, fact: EditFact) -> None:
        """把分发调度为后台任务（不 await）；持有引用直到任务完成。"""

        task = asyncio.get_running_loop().create_task(self._dispatch(fact))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, fact: EditFact) -> None:
        """调用 sink；任何异常只记录日志，不影响其它行/连接。"""

        try:
            await self._on_fact(fact)
        except Exception:
            logger.exception("Failed to apply file.edited for %s", fact.file_path)

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """单连接读循环。"""

        peer = str(writer.get_extra_info("peername") or "?")
        configure_stream_socket(writer.get_extra_info("socket"), keepalive_sec=self._keepalive_sec)
        handler = ConnectionHandler(on_fact=self._schedule, peer=peer)
        try:
            while True:
                try:
                    data = await asyncio.wait_for(reader.read(_READ_CHUNK), timeout=self._idle_timeout)
                except asyncio.TimeoutError:
                    logger.debug("Closing idle connection from %s", peer)
                    break
                if not data:
                    handler.finish()
                    break
                handler.feed(data)
        except OSError as e:
            logger.warning("TCP socket error from %s: %s", peer, e)
        finally:
            writer.close()
            with contextlib.suppress(OSError, asyncio.TimeoutError):
                await asyncio.wait_for(writer.wait_closed(), timeout=self._idle_timeout)

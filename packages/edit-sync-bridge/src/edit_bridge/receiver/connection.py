"""
stdio 上的换行分隔 JSON-RPC 2.0 连接（Receiver 进程 ↔ 编辑器客户端）。

行为：
- 入站 request（带 id）：交给 handler，结果/错误按 id 回写；每个 request 独立任务执行；
- 入站 notification（无 id）：交给 handler，不回写；
- 入站 response：resolve 对应的出站 request；
- 无法解析的行：记录 warning 后跳过；
- EOF：所有未完成的出站 request 以 ConnectionError 失败，`run()` 返回。

stdout 专用于协议输出；日志一律走 stderr。
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import sys
from typing import Any, Dict, Optional, Protocol, Set, Tuple

from edit_bridge.core.errors import EditBridgeError

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_STDIO_LIMIT = 16 * 1024 * 1024


class RpcError(EditBridgeError):
    """JSON-RPC 错误（本地抛出时回写给对端；对端返回时由 `request()` 抛出）。"""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        """转成 JSON-RPC error 对象。"""

        obj: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            obj["data"] = self.data
        return obj


class RpcHandler(Protocol):
    """入站方法的处理方（`BridgeAgent` 实现）。"""

    async def handle_request(self, method: str, params: Dict[str, Any]) -> Any:
        """处理 request；未知方法抛 `RpcError(METHOD_NOT_FOUND, ...)`。"""

        ...

    async def handle_notification(self, method: str, params: Dict[str, Any]) -> None:
        """处理 notification（无返回值）。"""

        ...


class LineWriter(Protocol):
    """最小写端接口（`asyncio.StreamWriter` 满足）。"""

    def write(self, data: bytes) -> None:
        ...

    async def drain(self) -> None:
        ...


async def open_stdio_streams() -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """把进程 stdin/stdout 包装为 asyncio streams（POSIX）。"""

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_STDIO_LIMIT)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    w_transport, w_protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(w_transport, w_protocol, reader, loop)
    return reader, writer


class JsonRpcConnection:
    """
    换行分隔 JSON-RPC 2.0 连接（双向：既服务入站 request，也发起出站 request）。

    参数：
    - reader：入站字节流（按行读取）
    - writer：出站写端
    - handler：入站方法处理方（可在构造后通过 `bind()` 设置）
    """

    def __init__(self, *, reader: asyncio.StreamReader, writer: LineWriter, handler: Optional[RpcHandler] = None) -> None:
        self._reader = reader
        self._writer = writer
        self._handler = handler
        self._ids = itertools.count(1)
        self._pending: Dict[int, "asyncio.Future[Any]"] = {}
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._write_lock = asyncio.Lock()
        self._closed = False

    def bind(self, handler: RpcHandler) -> None:
        """设置入站方法处理方。"""

        self._handler = handler

    async def _write(self, obj: Dict[str, Any]) -> None:
        """写一条消息（单行 JSON）；多任务并发写时串行化。"""

        data = (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")
        async with self._write_lock:
            self._writer.write(data)
            await self._writer.drain()

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        发起出站 request 并等待响应。

        异常：
        - RpcError：对端返回 error
        - ConnectionError：连接已关闭
        """

        if self._closed:
            raise ConnectionError("json-rpc connection is closed")
        req_id = next(self._ids)
        fut: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        self._pending[req_id] = fut
        try:
            await self._write({"jsonrpc": "2.0", "id": req_id, "method": method, "params": params or {}})
            return await fut
        finally:
            self._pending.pop(req_id, None)

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """发送出站 notification（不等待响应）。"""

        await self._write({"jsonrpc": "2.0", "method": method, "params": params or {}})

    async def run(self) -> None:
        """读循环：直到 EOF。"""

        try:
            while True:
                try:
                    raw = await self._reader.readline()
                except ValueError:
                    logger.warning("Dropping oversized json-rpc line")
                    continue
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    await self._process_line(line)
        finally:
            self._close()

    def _close(self) -> None:
        self._closed = True
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(ConnectionError("json-rpc connection closed"))
        logger.info("Connection closed")

    async def wait_idle(self) -> None:
        """等待所有入站 request 任务完成。"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process_line(self, line: str) -> None:
        try:
            msg = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse json-rpc line: %s", e)
            return
        if not isinstance(msg, dict):
            logger.warning("Ignoring non-object json-rpc message")
            return

        if "method" in msg:
            params = msg.get("params")
            if params is None:
                params = {}
            if "id" in msg:
                task = asyncio.get_running_loop().create_task(self._serve_request(msg["id"], str(msg["method"]), params))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            else:
                await self._serve_notification(str(msg["method"]), params)
            return

        if "id" in msg:
            self._resolve_response(msg)
            return
        logger.warning("Ignoring json-rpc message without method or id")

    def _resolve_response(self, msg: Dict[str, Any]) -> None:
        fut = self._pending.get(msg.get("id"))  # type: ignore[arg-type]
        if fut is None or fut.done():
            logger.debug("Ignoring response for unknown request id %r", msg.get("id"))
            return
        err = msg.get("error")
        if isinstance(err, dict):
            fut.set_exception(RpcError(int(err.get("code") or INTERNAL_ERROR), str(err.get("message") or ""), err.get("data")))
            return
        fut.set_result(msg.get("result"))

    async def _serve_request(self, req_id: Any, method: str, params: Any) -> None:
        response: Dict[str, Any] = {"jsonrpc": "2.0", "id": req_id}
        try:
            if self._handler is None:
                raise RpcError(METHOD_NOT_FOUND, f"method not found: {method}")
            if not isinstance(params, dict):
                raise RpcError(INVALID_PARAMS, "params must be an object")
            result = await self._handler.handle_request(method, params)
            response["result"] = result if result is not None else {}
        except RpcError as e:
            response["error"] = e.to_dict()
        except Exception as e:
            logger.exception("json-rpc handler failed for %s", method)
            response["error"] = RpcError(INTERNAL_ERROR, str(e) or type(e).__name__).to_dict()
        try:
            await self._write(response)
        except (OSError, RuntimeError) as e:
            logger.warning("Failed to write json-rpc response for %s: %s", method, e)

    async def _serve_notification(self, method: str, params: Any) -> None:
        if self._handler is None or not isinstance(params, dict):
            return
        try:
            await self._handler.handle_notification(method, params)
        except Exception:
            logger.exception("json-rpc notification handler failed for %s", method)

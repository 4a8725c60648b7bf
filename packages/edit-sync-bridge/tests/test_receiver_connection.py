from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

from edit_bridge.config.loader import load_config_dicts
from edit_bridge.core.contracts import EditFact
from edit_bridge.receiver.agent import BridgeAgent
from edit_bridge.receiver.connection import INTERNAL_ERROR, METHOD_NOT_FOUND, JsonRpcConnection
from edit_bridge.receiver.service import run_receiver
from edit_bridge.transport.receiver import FileEditedReceiver


class _CaptureWriter:
    """收集写出的 JSON-RPC 消息（每次 write 一行）。"""

    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []
        self.new_message = asyncio.Event()

    def write(self, data: bytes) -> None:
        for line in data.decode("utf-8").splitlines():
            if line.strip():
                self.messages.append(json.loads(line))
        self.new_message.set()

    async def drain(self) -> None:
        return None

    async def wait_for(self, predicate, timeout: float = 2.0) -> Dict[str, Any]:  # type: ignore[no-untyped-def]
        async def _poll() -> Dict[str, Any]:
            while True:
                for msg in self.messages:
                    if predicate(msg):
                        return msg
                self.new_message.clear()
                await self.new_message.wait()

        return await asyncio.wait_for(_poll(), timeout=timeout)


def _feed(reader: asyncio.StreamReader, obj: Dict[str, Any]) -> None:
    reader.feed_data((json.dumps(obj) + "\n").encode("utf-8"))


class _Boom:
    async def handle_request(self, method: str, params: Dict[str, Any]) -> Any:
        raise RuntimeError("kaboom")

    async def handle_notification(self, method: str, params: Dict[str, Any]) -> None:
        raise RuntimeError("kaboom")


def test_connection_serves_requests_and_reports_errors() -> None:
    async def _main() -> List[Dict[str, Any]]:
        reader = asyncio.StreamReader()
        writer = _CaptureWriter()
        conn = JsonRpcConnection(reader=reader, writer=writer)
        conn.bind(BridgeAgent(client=conn))

        _feed(reader, {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": 1}})
        _feed(reader, {"jsonrpc": "2.0", "id": 2, "method": "nope", "params": {}})
        reader.feed_data(b"not json\n")
        _feed(reader, {"jsonrpc": "2.0", "id": 3, "method": "session/new", "params": []})
        reader.feed_eof()

        await conn.run()
        await conn.wait_idle()
        return writer.messages

    messages = {m["id"]: m for m in asyncio.run(_main())}
    assert messages[1]["result"]["protocolVersion"] == 1
    assert messages[2]["error"]["code"] == METHOD_NOT_FOUND
    assert messages[3]["error"]["code"] == -32602


def test_connection_maps_handler_crash_to_internal_error() -> None:
    async def _main() -> List[Dict[str, Any]]:
        reader = asyncio.StreamReader()
        writer = _CaptureWriter()
        conn = JsonRpcConnection(reader=reader, writer=writer, handler=_Boom())
        _feed(reader, {"jsonrpc": "2.0", "id": 7, "method": "initialize"})
        _feed(reader, {"jsonrpc": "2.0", "method": "session/cancel", "params": {}})
        reader.feed_eof()
        await conn.run()
        await conn.wait_idle()
        return writer.messages

    messages = asyncio.run(_main())
    assert len(messages) == 1
    assert messages[0]["id"] == 7
    assert messages[0]["error"]["code"] == INTERNAL_ERROR


def test_outbound_request_resolves_with_client_response() -> None:
    async def _main() -> Any:
        reader = asyncio.StreamReader()
        writer = _CaptureWriter()
        conn = JsonRpcConnection(reader=reader, writer=writer)
        run_task = asyncio.get_running_loop().create_task(conn.run())

        call = asyncio.get_running_loop().create_task(conn.request("fs/write_text_file", {"path": "/tmp/a"}))
        req = await writer.wait_for(lambda m: m.get("method") == "fs/write_text_file")
        _feed(reader, {"jsonrpc": "2.0", "id": req["id"], "result": None})
        result = await asyncio.wait_for(call, timeout=2.0)

        reader.feed_eof()
        await run_task
        return result

    assert asyncio.run(_main()) is None


def test_outbound_request_fails_when_connection_closes() -> None:
    async def _main() -> BaseException:
        reader = asyncio.StreamReader()
        writer = _CaptureWriter()
        conn = JsonRpcConnection(reader=reader, writer=writer)
        run_task = asyncio.get_running_loop().create_task(conn.run())
        call = asyncio.get_running_loop().create_task(conn.request("fs/write_text_file", {}))
        await writer.wait_for(lambda m: m.get("method") == "fs/write_text_file")
        reader.feed_eof()
        await run_task
        try:
            await call
        except ConnectionError as e:
            return e
        raise AssertionError("request should have failed")

    assert isinstance(asyncio.run(_main()), ConnectionError)


def test_run_receiver_writes_tcp_fact_into_active_session(tmp_path: Path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    started: List[FileEditedReceiver] = []
    original_start = FileEditedReceiver.start

    async def _start(self: FileEditedReceiver) -> None:
        await original_start(self)
        started.append(self)

    monkeypatch.setattr(FileEditedReceiver, "start", _start)

    async def _main() -> Dict[str, Any]:
        cfg = load_config_dicts([{"transport": {"port": 0}, "side_log": {"dir": str(tmp_path)}}])
        reader = asyncio.StreamReader()
        writer = _CaptureWriter()
        service = asyncio.get_running_loop().create_task(run_receiver(cfg, reader=reader, writer=writer))

        _feed(reader, {"jsonrpc": "2.0", "id": 1, "method": "session/new", "params": {"cwd": str(tmp_path)}})
        created = await writer.wait_for(lambda m: m.get("id") == 1)
        while not started:
            await asyncio.sleep(0.01)

        _r, w = await asyncio.open_connection("127.0.0.1", started[0].port)
        w.write(EditFact(file_path="/tmp/a.ts", content_new="A\n").to_line())
        await w.drain()
        w.close()

        req = await writer.wait_for(lambda m: m.get("method") == "fs/write_text_file")
        _feed(reader, {"jsonrpc": "2.0", "id": req["id"], "result": None})
        reader.feed_eof()
        await asyncio.wait_for(service, timeout=2.0)
        assert req["params"]["sessionId"] == created["result"]["sessionId"]
        return req["params"]

    params = asyncio.run(_main())
    assert params["path"] == "/tmp/a.ts"
    assert params["content"] == "A\n"

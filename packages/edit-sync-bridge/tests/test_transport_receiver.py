from __future__ import annotations

import asyncio
import json
from typing import List

from edit_bridge.core.contracts import EditFact
from edit_bridge.transport.receiver import ConnectionHandler, FileEditedReceiver


def _line(file: str, content: str) -> bytes:
    return EditFact(file_path=file, content_new=content).to_line()


def test_connection_handler_reassembles_line_split_across_chunks() -> None:
    got: List[EditFact] = []
    handler = ConnectionHandler(on_fact=got.append)
    data = _line("/tmp/a.ts", "x = 1\n")
    cut = len(data) // 2

    handler.feed(data[:cut])
    assert got == []
    handler.feed(data[cut:])

    assert [f.file_path for f in got] == ["/tmp/a.ts"]
    assert got[0].content_new == "x = 1\n"


def test_connection_handler_skips_malformed_line_and_keeps_going() -> None:
    got: List[EditFact] = []
    handler = ConnectionHandler(on_fact=got.append)
    payload = (
        _line("/tmp/1", "one")
        + _line("/tmp/2", "two")
        + b"{not json\n"
        + b'{"type":"file.edited","properties":{"file":""}}\n'
        + _line("/tmp/3", "three")
    )
    handler.feed(payload)

    assert [f.file_path for f in got] == ["/tmp/1", "/tmp/2", "/tmp/3"]
    assert handler.dispatched == 3
    assert handler.rejected == 2


def test_connection_handler_ignores_other_message_types() -> None:
    got: List[EditFact] = []
    handler = ConnectionHandler(on_fact=got.append)
    handler.feed(json.dumps({"type": "session.idle", "properties": {}}).encode("utf-8") + b"\n")
    assert got == []
    assert handler.rejected == 0


def test_connection_handler_finish_processes_residual_without_newline() -> None:
    got: List[EditFact] = []
    handler = ConnectionHandler(on_fact=got.append)
    handler.feed(_line("/tmp/a", "A").rstrip(b"\n"))
    assert got == []
    handler.finish()
    assert [f.content_new for f in got] == ["A"]


async def _send_raw(port: int, chunks: List[bytes], *, pause: float = 0.02) -> None:
    _reader, writer = await asyncio.open_connection("127.0.0.1", port)
    for chunk in chunks:
        writer.write(chunk)
        await writer.drain()
        await asyncio.sleep(pause)
    writer.close()
    await writer.wait_closed()


def test_receiver_dispatches_facts_from_real_socket() -> None:
    async def _main() -> List[EditFact]:
        got: List[EditFact] = []

        async def _sink(fact: EditFact) -> None:
            got.append(fact)

        async with FileEditedReceiver(on_fact=_sink, port=0) as rx:
            data = _line("/tmp/a.ts", "hello\n") + _line("/tmp/b.ts", "bye")
            cut = len(data) // 3
            await _send_raw(rx.port, [data[:cut], data[cut:], b"garbage\n", _line("/tmp/c.ts", "c").rstrip(b"\n")])
            await asyncio.sleep(0.1)
            await rx.drain()
        return got

    got = asyncio.run(_main())
    assert [f.file_path for f in got] == ["/tmp/a.ts", "/tmp/b.ts", "/tmp/c.ts"]


def test_receiver_sink_failure_does_not_affect_later_facts() -> None:
    async def _main() -> List[str]:
        applied: List[str] = []

        async def _sink(fact: EditFact) -> None:
            if fact.file_path == "/tmp/boom":
                raise RuntimeError("editor rejected write")
            applied.append(fact.file_path)

        async with FileEditedReceiver(on_fact=_sink, port=0) as rx:
            await _send_raw(rx.port, [_line("/tmp/boom", "x") + _line("/tmp/ok", "y")])
            await asyncio.sleep(0.1)
            await rx.drain()
        return applied

    assert asyncio.run(_main()) == ["/tmp/ok"]


def test_receiver_closes_idle_connection() -> None:
    async def _main() -> bytes:
        async def _sink(fact: EditFact) -> None:
            return None

        async with FileEditedReceiver(on_fact=_sink, port=0, idle_timeout_sec=0.1) as rx:
            reader, writer = await asyncio.open_connection("127.0.0.1", rx.port)
            try:
                return await asyncio.wait_for(reader.read(), timeout=2.0)
            finally:
                writer.close()

    assert asyncio.run(_main()) == b""

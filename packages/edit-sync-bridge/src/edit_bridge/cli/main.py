"""
edit-bridge CLI（emit/receive/send/mode）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）；
- `receive` 子命令的 stdout 专用于 JSON-RPC 协议，因此日志一律写 stderr；
- 其它子命令在 stdout 输出机器可读 JSON。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from edit_bridge.config.loader import BridgeConfig, load_config
from edit_bridge.core.contracts import EditFact
from edit_bridge.emitter.handler import EditEventHandler
from edit_bridge.emitter.runner import pump_events
from edit_bridge.mode import resolve_mode
from edit_bridge.receiver.connection import open_stdio_streams
from edit_bridge.receiver.service import run_receiver
from edit_bridge.state.side_log import SideLog
from edit_bridge.transport.sender import FileEditedSender

logger = logging.getLogger(__name__)


def _dump_json_to_stdout(obj: Dict[str, Any]) -> None:
    """将 dict 输出为单行 JSON 到 stdout（末尾包含换行）。"""

    print(json.dumps(obj, ensure_ascii=False, separators=(",", ":")))


def _configure_logging(level: str) -> None:
    """日志写 stderr（stdout 留给协议/JSON 输出）。"""

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    """构建 CLI argparse parser。"""

    parser = argparse.ArgumentParser(
        prog="edit-bridge",
        description="Edit sync bridge between an automation agent and a live editor.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
        p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")

    emit = sub.add_parser("emit", help="Read lifecycle events (JSONL) from stdin and emit file.edited facts")
    _add_common_flags(emit)

    receive = sub.add_parser("receive", help="Run the receiver (TCP listener + JSON-RPC agent on stdio)")
    _add_common_flags(receive)

    send = sub.add_parser("send", help="Send one file.edited fact")
    _add_common_flags(send)
    send.add_argument("file", help="Target file path carried in the fact.")
    send.add_argument("--content-file", default=None, help="Read content from this file (default: stdin).")

    mode = sub.add_parser("mode", help="Print the resolved edit mode")
    _add_common_flags(mode)

    return parser


def _side_log_for(cfg: BridgeConfig) -> SideLog:
    return SideLog(cfg.paths().side_log_path)


async def _run_emit(cfg: BridgeConfig) -> int:
    side_log = _side_log_for(cfg)
    handler = EditEventHandler(
        mode=resolve_mode(cfg.paths().opencode_config_path),
        sender=FileEditedSender.from_config(cfg, side_log=side_log),
        side_log=side_log,
    )
    handled = await pump_events(handler, sys.stdin.readline)
    logger.info("Event stream closed after %d events", handled)
    return 0


async def _run_receive(cfg: BridgeConfig) -> int:
    reader, writer = await open_stdio_streams()
    await run_receiver(cfg, reader=reader, writer=writer)
    return 0


async def _run_send(cfg: BridgeConfig, *, file: str, content_file: Optional[str]) -> int:
    if content_file:
        content = Path(content_file).read_text(encoding="utf-8")
    else:
        content = sys.stdin.read()
    sender = FileEditedSender.from_config(cfg, side_log=_side_log_for(cfg))
    outcome = await sender.send(EditFact(file_path=file, content_new=content))
    _dump_json_to_stdout(outcome.to_dict())
    return 0 if outcome.ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口函数（用于 console_scripts 与测试）。

    参数：
    - argv：命令行参数列表（不含程序名）；为 None 时读取 sys.argv[1:]

    返回：
    - int：exit code（不会直接 sys.exit，便于测试）
    """

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        code = getattr(exc, "code", 2)
        if code is None:
            return 2
        return int(code)

    _configure_logging(args.log_level)

    try:
        cfg = load_config([Path(p) for p in args.config])
    except (OSError, ValueError, ValidationError) as e:
        _dump_json_to_stdout({"ok": False, "error_kind": "config", "error": str(e)})
        return 2

    if args.command == "mode":
        _dump_json_to_stdout({"mode": resolve_mode(cfg.paths().opencode_config_path).value})
        return 0
    if args.command == "emit":
        return asyncio.run(_run_emit(cfg))
    if args.command == "receive":
        return asyncio.run(_run_receive(cfg))
    if args.command == "send":
        try:
            return asyncio.run(_run_send(cfg, file=args.file, content_file=args.content_file))
        except OSError as e:
            _dump_json_to_stdout({"ok": False, "error_kind": "not_found", "error": str(e)})
            return 2

    parser.print_usage(sys.stderr)
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""
本机回环示例：在同一进程里启动 receiver，再用 sender 投递一条 EditFact。

用途：
- 演示 overlay 配置 + `FileEditedReceiver` / `FileEditedSender` 的装配方式；
- 不依赖编辑器：收到的事实直接打印到 stdout。
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List

from edit_bridge import EditFact, FileEditedReceiver, FileEditedSender, load_config


async def _roundtrip(*, config_paths: List[Path], file: str, content: str) -> int:
    """
    启动 receiver（端口 0，由系统分配）→ 发送一条事实 → 等待分发完成。

    返回：
    - exit code（0 表示投递成功）
    """

    cfg = load_config(config_paths)

    async def _print_fact(fact: EditFact) -> None:
        print(f"received {fact.file_path}: {len(fact.content_new)} chars")

    async with FileEditedReceiver(on_fact=_print_fact, host=cfg.transport.host, port=0) as rx:
        sender = FileEditedSender(host=cfg.transport.host, port=rx.port)
        outcome = await sender.send(EditFact(file_path=file, content_new=content))
        await asyncio.sleep(0.1)
        await rx.drain()
    print(f"send outcome: {outcome.to_dict()}")
    return 0 if outcome.ok else 1


def main() -> int:
    """
    示例脚本入口。

    命令行参数：
    - --config：overlay 路径（可重复）；
    - --file：事实中的目标路径；
    - --content：事实中的完整内容。
    """

    parser = argparse.ArgumentParser(description="Run a loopback file.edited roundtrip")
    parser.add_argument("--config", action="append", default=[], help="Overlay YAML path (repeatable)")
    parser.add_argument("--file", default="/tmp/demo.txt", help="Target path carried in the fact")
    parser.add_argument("--content", default="hello from edit-bridge\n", help="Full file content")
    args = parser.parse_args()
    return asyncio.run(_roundtrip(config_paths=[Path(p) for p in args.config], file=args.file, content=args.content))


if __name__ == "__main__":
    raise SystemExit(main())

"""
换行分帧（newline-delimited）工具。

`split_lines` 是纯函数：输入旧 buffer 与新 chunk，返回（完整行列表, 剩余 buffer），
便于单独测试“跨 chunk 重组”行为；`LineBuffer` 是它的有状态包装（每个连接一个）。
"""

from __future__ import annotations

import codecs
import contextlib
import socket
from typing import List, Optional, Tuple


def split_lines(buffer: str, chunk: str) -> Tuple[List[str], str]:
    """
    追加 chunk 并抽取所有完整行。

    参数：
    - buffer：上一次剩余的未完成文本
    - chunk：新到达的文本

    返回：
    - (lines, remaining)：lines 为 trim 后的非空行（保序）；remaining 为最后一个 `\\n` 之后的文本
    """

    data = buffer + chunk
    lines: List[str] = []
    start = 0
    while True:
        idx = data.find("\n", start)
        if idx < 0:
            break
        line = data[start:idx].strip()
        if line:
            lines.append(line)
        start = idx + 1
    return lines, data[start:]


class LineBuffer:
    """
    每连接一个的行缓冲（UTF-8 增量解码 + `split_lines`）。

    说明：
    - 增量解码保证多字节字符被拆到两个 chunk 时不会损坏；
    - `finish()` 在连接 EOF 时调用，把残留内容当作最后一行。
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """尚未遇到换行的残留文本。"""

        return self._buffer

    def feed(self, data: bytes) -> List[str]:
        """喂入一段字节，返回本次凑齐的完整行。"""

        lines, self._buffer = split_lines(self._buffer, self._decoder.decode(data))
        return lines

    def finish(self) -> List[str]:
        """EOF：返回残留内容（trim 后非空时）作为最后一行，并清空 buffer。"""

        rest = (self._buffer + self._decoder.decode(b"", final=True)).strip()
        self._buffer = ""
        return [rest] if rest else []


def configure_stream_socket(sock: Optional[socket.socket], *, keepalive_sec: float) -> None:
    """
    设置 TCP 选项：no-delay + keep-alive（短探测间隔，平台支持时）。

    说明：
    - sock 可能为 None（例如测试替身的 transport）；
    - 选项设置失败不影响收发（best-effort）。
    """

    if sock is None:
        return
    interval = max(1, int(round(keepalive_sec)))
    options = [
        (socket.IPPROTO_TCP, socket.TCP_NODELAY, 1),
        (socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1),
    ]
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval))
    for level, opt, value in options:
        with contextlib.suppress(OSError):
            sock.setsockopt(level, opt, value)

"""
Diff 规范化（纯文本变换）。

步骤（顺序固定）：
1) CR-LF → LF
2) 删除 diff 工具前导行（trim 后以 `Index:` 或 `===` 开头）
3) 第一条 `--- ` header 改写为 `--- a/file`，第一条 `+++ ` header 改写为 `+++ b/file`

说明：
- 补丁应用只需要“某个格式正确的 header”，真实路径由 extractor 单独跟踪；
- 变换幂等：对已规范化的文本再做一次，结果不变。
"""

from __future__ import annotations

import re

from edit_bridge.core.utils import normalize_newlines

PREAMBLE_MARKERS = ("Index:", "===")
PLACEHOLDER_OLD_HEADER = "--- a/file"
PLACEHOLDER_NEW_HEADER = "+++ b/file"

_OLD_HEADER_RE = re.compile(r"^--- .*$", re.MULTILINE)
_NEW_HEADER_RE = re.compile(r"^\+\+\+ .*$", re.MULTILINE)


def is_preamble_line(line: str) -> bool:
    """判断一行是否是 diff 工具前导行（不携带补丁信息）。"""

    return line.lstrip().startswith(PREAMBLE_MARKERS)


def strip_preamble(text: str) -> str:
    """删除所有前导行（保留其余行与行序）。"""

    return "\n".join(line for line in text.split("\n") if not is_preamble_line(line))


def normalize_diff(diff: str) -> str:
    """
    规范化 unified diff 文本。

    参数：
    - diff：原始 diff（可能包含 CR-LF 与 `Index:`/`===` 前导行）

    返回：
    - 规范化后的 diff 文本
    """

    text = strip_preamble(normalize_newlines(diff))
    text = _OLD_HEADER_RE.sub(PLACEHOLDER_OLD_HEADER, text, count=1)
    text = _NEW_HEADER_RE.sub(PLACEHOLDER_NEW_HEADER, text, count=1)
    return text

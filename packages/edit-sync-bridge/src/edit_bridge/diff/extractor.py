"""
Diff 路径/补丁提取。

路径来源优先级：`+++ <path>` → `--- <path>` → `Index: <path>`（各取第一条）。
按优先级逐个清洗，第一个可用路径胜出；清洗结果为 `/dev/null` 的来源被跳过。
全部来源缺失或都是 `/dev/null` 时返回 None。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from edit_bridge.core.utils import normalize_newlines
from edit_bridge.diff.normalizer import normalize_diff

_AB_PREFIX_RE = re.compile(r"^(?:[ab]/)*")
_DEV_NULL = ("/dev/null", "dev/null")


@dataclass(frozen=True)
class DiffInfo:
    """从原始 diff 派生的信息：目标路径（可为 None）与规范化 diff。"""

    file_path: Optional[str]
    normalized_diff: str

    @property
    def resolved(self) -> bool:
        """是否解析出了可编辑的目标路径。"""

        return self.file_path is not None


def clean_path(value: Optional[str]) -> Optional[str]:
    """
    清洗 header 中的路径。

    规则：
    - 去掉任意层 `a/` / `b/` 前缀与两侧空白；
    - `/dev/null`（有无前导 `/`）视为 None。
    """

    if not value:
        return None
    cleaned = _AB_PREFIX_RE.sub("", value.strip()).strip()
    if not cleaned or cleaned in _DEV_NULL:
        return None
    return cleaned


def _header_path(lines: List[str], prefix: str) -> Optional[str]:
    """返回第一条 `<prefix> ` 开头的行中的路径部分（去掉 `\\t` 后的时间戳）。"""

    head = f"{prefix} "
    for line in lines:
        if line.startswith(head):
            return line[len(head) :].split("\t", 1)[0].strip()
    return None


def extract_diff_info(diff: str) -> DiffInfo:
    """
    从原始 diff 提取目标路径与规范化 diff。

    参数：
    - diff：原始 unified diff 文本

    返回：
    - DiffInfo（`file_path` 为 None 表示没有可用 header）
    """

    text = normalize_newlines(diff)
    lines = text.split("\n")
    file_path: Optional[str] = None
    for prefix in ("+++", "---", "Index:"):
        file_path = clean_path(_header_path(lines, prefix))
        if file_path is not None:
            break
    return DiffInfo(file_path=file_path, normalized_diff=normalize_diff(text))

"""
Patch Reconciler：把规范化 unified diff 应用到 base 文本上，得到新内容。

语义：
- base 与 diff 在应用前都做 CR-LF → LF；
- 严格匹配（zero fuzz）：hunk 的 context/删除行必须与 base 完全一致；
  若声明的行号发生漂移，则从声明位置向两侧就近搜索同一片段；
- 支持 `\\ No newline at end of file` 标记；
- 应用失败抛 `PatchApplyError`（`try_reconcile` 则返回 None）。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from edit_bridge.core.errors import PatchApplyError
from edit_bridge.core.utils import normalize_newlines

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_NO_EOL_MARKER = "\\"


@dataclass
class DiffHunk:
    """一个 `@@` 片段（行不含前缀与换行符）。"""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: List[Tuple[str, str]] = field(default_factory=list)  # (tag, text)
    old_no_eol: bool = False
    new_no_eol: bool = False

    @property
    def before(self) -> List[str]:
        """hunk 期望在 base 中看到的行（context + 删除）。"""

        return [text for tag, text in self.lines if tag in (" ", "-")]

    @property
    def after(self) -> List[str]:
        """hunk 应用后的行（context + 新增）。"""

        return [text for tag, text in self.lines if tag in (" ", "+")]


def parse_hunks(diff: str) -> List[DiffHunk]:
    """
    解析 diff 中的全部 hunk（header 之外的行被忽略）。

    说明：
    - hunk 行数由 `@@` header 的 count 驱动；
    - hunk 内的空行视为空 context 行（部分工具会去掉 context 行的前导空格）。

    异常：
    - PatchApplyError：header 非法、行前缀非法、或 hunk 被截断
    """

    lines = normalize_newlines(diff).split("\n")
    hunks: List[DiffHunk] = []
    i = 0
    n = len(lines)
    while i < n:
        line = lines[i]
        if not line.startswith("@@"):
            i += 1
            continue
        m = _HUNK_HEADER_RE.match(line)
        if m is None:
            raise PatchApplyError(f"malformed hunk header: {line!r}", hunk_index=len(hunks))
        hunk = DiffHunk(
            old_start=int(m.group(1)),
            old_count=int(m.group(2) if m.group(2) is not None else 1),
            new_start=int(m.group(3)),
            new_count=int(m.group(4) if m.group(4) is not None else 1),
        )
        i += 1
        old_seen = 0
        new_seen = 0
        last_tag: Optional[str] = None
        while i < n:
            raw = lines[i]
            if raw.startswith(_NO_EOL_MARKER):
                if last_tag in (" ", "-"):
                    hunk.old_no_eol = True
                if last_tag in (" ", "+"):
                    hunk.new_no_eol = True
                i += 1
                continue
            if old_seen >= hunk.old_count and new_seen >= hunk.new_count:
                break
            if raw == "" and i == n - 1:
                break
            tag = raw[0] if raw else " "
            text = raw[1:]
            if tag not in (" ", "-", "+"):
                raise PatchApplyError(f"unexpected line in hunk: {raw!r}", hunk_index=len(hunks))
            if tag in (" ", "-"):
                old_seen += 1
            if tag in (" ", "+"):
                new_seen += 1
            hunk.lines.append((tag, text))
            last_tag = tag
            i += 1
        if old_seen != hunk.old_count or new_seen != hunk.new_count:
            raise PatchApplyError(
                f"hunk line counts do not match header (old {old_seen}/{hunk.old_count}, new {new_seen}/{hunk.new_count})",
                hunk_index=len(hunks),
            )
        hunks.append(hunk)
    return hunks


def _locate(base: List[str], before: List[str], *, expected: int, lower: int) -> Optional[int]:
    """
    在 base 中定位 before 片段：先试 expected，然后按距离就近向两侧搜索。

    参数：
    - lower：允许的最小起点（不能与已应用的 hunk 重叠）
    """

    width = len(before)
    upper = len(base) - width
    if upper < lower:
        return None
    expected = min(max(expected, lower), upper)
    for distance in range(0, max(expected - lower, upper - expected) + 1):
        for pos in (expected - distance, expected + distance) if distance else (expected,):
            if lower <= pos <= upper and base[pos : pos + width] == before:
                return pos
    return None


def apply_unified_diff(base: str, diff: str) -> str:
    """
    把 unified diff 应用到 base 文本。

    参数：
    - base：原内容（文件不存在时为空串）
    - diff：unified diff（建议先经 `normalize_diff`）

    返回：
    - 新内容

    异常：
    - PatchApplyError：diff 没有 hunk，或任一 hunk 无法与 base 对齐
    """

    hunks = parse_hunks(diff)
    if not hunks:
        raise PatchApplyError("diff contains no hunks")

    base = normalize_newlines(base)
    base_lines = base.split("\n")
    trailing_newline = base.endswith("\n") or base == ""
    if base_lines and base_lines[-1] == "":
        base_lines.pop()

    out: List[str] = []
    cursor = 0
    offset = 0
    for index, hunk in enumerate(hunks):
        before = hunk.before
        # old_count == 0 时 old_start 指“插入到该行之后”
        declared = hunk.old_start if hunk.old_count == 0 else hunk.old_start - 1
        pos = _locate(base_lines, before, expected=declared + offset, lower=cursor)
        if pos is None:
            raise PatchApplyError("hunk does not match base content", hunk_index=index)
        out.extend(base_lines[cursor:pos])
        out.extend(hunk.after)
        cursor = pos + len(before)
        offset += len(hunk.after) - len(before)
        if hunk.new_no_eol:
            trailing_newline = False
        elif hunk.old_no_eol:
            trailing_newline = True
    out.extend(base_lines[cursor:])

    if not out:
        return ""
    return "\n".join(out) + ("\n" if trailing_newline else "")


def reconcile(base: str, normalized_diff: str) -> str:
    """计算新内容（失败抛 `PatchApplyError`）。"""

    return apply_unified_diff(normalize_newlines(base), normalize_newlines(normalized_diff))


def try_reconcile(base: str, normalized_diff: str) -> Optional[str]:
    """
    计算新内容；diff 无法干净应用时返回 None（不是硬错误）。

    说明：
    - 常见原因：diff 捕获之后 base 已漂移；
    - 调用方据此“不产生事实”（不创建 pending edit）。
    """

    try:
        return reconcile(base, normalized_diff)
    except PatchApplyError as e:
        logger.debug("Patch does not apply cleanly: %s", e)
        return None

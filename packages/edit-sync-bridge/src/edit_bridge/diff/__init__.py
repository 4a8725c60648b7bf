"""
unified diff 处理：规范化、路径提取、补丁应用。
"""

from __future__ import annotations

from edit_bridge.diff.extractor import DiffInfo, extract_diff_info
from edit_bridge.diff.normalizer import normalize_diff
from edit_bridge.diff.reconciler import apply_unified_diff, reconcile, try_reconcile

__all__ = [
    "DiffInfo",
    "apply_unified_diff",
    "extract_diff_info",
    "normalize_diff",
    "reconcile",
    "try_reconcile",
]

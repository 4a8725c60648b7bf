"""
Mode Gate：进程级不可变的编辑应用模式。

- `gated`：opencode 配置中 `permission.edit == "ask"`，编辑需一次性授权后才应用；
- `direct`：其它任何情况（包括配置缺失/无法解析），工具编辑事件立即应用。

约束：只在进程入口解析一次，之后作为值传入 handler，进程生命周期内不变。
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ASK = "ask"


class Mode(str, Enum):
    """编辑应用模式。"""

    DIRECT = "direct"
    GATED = "gated"


def mode_from_permission(value: Any) -> Mode:
    """把 `permission.edit` 的取值映射为 Mode（只有字面量 `ask` 为 gated）。"""

    return Mode.GATED if value == ASK else Mode.DIRECT


def read_edit_permission(config_path: Path) -> Any:
    """
    读取 opencode 配置中的 `permission.edit`。

    返回：
    - 原始取值；文件不存在/JSON 非法/结构不符时返回 None
    """

    try:
        raw = Path(config_path).read_text(encoding="utf-8")
        obj = json.loads(raw)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Cannot read edit permission from %s: %s", config_path, e)
        return None
    if not isinstance(obj, dict):
        return None
    permission = obj.get("permission")
    if not isinstance(permission, dict):
        return None
    return permission.get("edit")


def resolve_mode(config_path: Path) -> Mode:
    """解析模式（任何读取/解析失败都视为 direct）。"""

    mode = mode_from_permission(read_edit_permission(config_path))
    logger.info("Edit mode resolved to %s (from %s)", mode.value, config_path)
    return mode

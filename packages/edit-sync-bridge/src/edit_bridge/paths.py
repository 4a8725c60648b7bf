"""
per-user 路径约定（opencode 配置文件、side log 目录）。

说明：
- 这里只计算路径，不做任何 I/O；
- `env` 参数便于测试注入（默认读取 os.environ）。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class BridgePaths:
    """bridge 使用的关键路径集合。"""

    opencode_config_path: Path
    side_log_dir: Path
    side_log_path: Path


def default_opencode_config_path(*, home: Optional[Path] = None) -> Path:
    """返回 opencode 用户级配置文件路径：`~/.config/opencode/opencode.json`。"""

    base = Path(home) if home is not None else Path.home()
    return base / ".config" / "opencode" / "opencode.json"


def default_side_log_dir(*, env: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Path:
    """
    返回 side log 目录。

    优先级：
    1) `$APPDATA/opencode/bridge-logs`（Windows）
    2) `$XDG_DATA_HOME/opencode/bridge-logs`
    3) `~/.local/share/opencode/bridge-logs`
    """

    e = os.environ if env is None else env
    appdata = str(e.get("APPDATA") or "").strip()
    if appdata:
        return Path(appdata) / "opencode" / "bridge-logs"
    xdg = str(e.get("XDG_DATA_HOME") or "").strip()
    if xdg:
        return Path(xdg) / "opencode" / "bridge-logs"
    base = Path(home) if home is not None else Path.home()
    return base / ".local" / "share" / "opencode" / "bridge-logs"


def get_bridge_paths(
    *,
    opencode_config_path: Optional[str] = None,
    side_log_dir: Optional[str] = None,
    side_log_filename: str = "plugin.log",
    env: Optional[Mapping[str, str]] = None,
) -> BridgePaths:
    """
    解析 bridge 路径（显式配置优先，否则使用 per-user 默认值）。

    参数：
    - opencode_config_path：显式 opencode 配置路径（可选；支持 `~`）
    - side_log_dir：显式 side log 目录（可选；支持 `~`）
    - side_log_filename：side log 文件名
    - env：环境变量映射（可选）
    """

    cfg = Path(opencode_config_path).expanduser() if opencode_config_path else default_opencode_config_path()
    log_dir = Path(side_log_dir).expanduser() if side_log_dir else default_side_log_dir(env=env)
    return BridgePaths(
        opencode_config_path=cfg,
        side_log_dir=log_dir,
        side_log_path=log_dir / side_log_filename,
    )

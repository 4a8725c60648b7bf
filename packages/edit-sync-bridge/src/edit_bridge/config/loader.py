"""
配置加载器（YAML）。

设计目标：
- 内置默认配置 + 多个 YAML overlay，按顺序做深度合并（后者覆盖前者）；
- 环境变量最后覆盖（端口/host/目录），只在进程入口读取一次；
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误被静默吞掉）；
- 结果为不可变值（frozen），构造一次后传入 sender/receiver/mode gate 的构造函数。
"""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from edit_bridge.config.defaults import load_default_config_dict
from edit_bridge.paths import BridgePaths, get_bridge_paths

ENV_PORT = "ACP_FILE_EDITED_PORT"
ENV_HOST = "EDIT_BRIDGE_HOST"
ENV_LOG_DIR = "EDIT_BRIDGE_LOG_DIR"
ENV_OPENCODE_CONFIG = "EDIT_BRIDGE_OPENCODE_CONFIG"


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class TransportConfig(BaseModel):
    """loopback TCP 参数（sender 与 receiver 共用）。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(default="127.0.0.1", min_length=1)
    port: int = Field(default=41234, ge=0, le=65535)
    connect_timeout_sec: float = Field(default=3.0, gt=0.0)
    keepalive_sec: float = Field(default=1.0, gt=0.0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=200, ge=0)
    idle_timeout_sec: float = Field(default=5.0, gt=0.0)


class SideLogConfig(BaseModel):
    """side log（append-only 诊断日志）位置。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    dir: Optional[str] = None
    filename: str = Field(default="plugin.log", min_length=1)


class ModeConfig(BaseModel):
    """Mode Gate 读取的外部配置文件位置。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    opencode_config_path: Optional[str] = None


class BridgeConfig(BaseModel):
    """edit-sync-bridge 配置根对象。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    config_version: int = 1
    transport: TransportConfig = Field(default_factory=TransportConfig)
    side_log: SideLogConfig = Field(default_factory=SideLogConfig)
    mode: ModeConfig = Field(default_factory=ModeConfig)

    def paths(self, *, env: Optional[Mapping[str, str]] = None) -> BridgePaths:
        """把可选路径字段解析为具体路径（未配置时使用 per-user 默认值）。"""

        return get_bridge_paths(
            opencode_config_path=self.mode.opencode_config_path,
            side_log_dir=self.side_log.dir,
            side_log_filename=self.side_log.filename,
            env=env,
        )


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件并返回 dict（空文件视为空 overlay）。"""

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping(dict): {path}")
    return data


def env_overlay(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    把环境变量映射为 overlay dict。

    参数：
    - env：环境变量映射（默认 os.environ）

    异常：
    - ValueError：`ACP_FILE_EDITED_PORT` 不是整数
    """

    e = os.environ if env is None else env
    overlay: Dict[str, Any] = {}

    raw_port = str(e.get(ENV_PORT) or "").strip()
    if raw_port:
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"{ENV_PORT} must be an integer, got: {raw_port!r}") from None
        overlay.setdefault("transport", {})["port"] = port

    host = str(e.get(ENV_HOST) or "").strip()
    if host:
        overlay.setdefault("transport", {})["host"] = host

    log_dir = str(e.get(ENV_LOG_DIR) or "").strip()
    if log_dir:
        overlay.setdefault("side_log", {})["dir"] = log_dir

    opencode_cfg = str(e.get(ENV_OPENCODE_CONFIG) or "").strip()
    if opencode_cfg:
        overlay.setdefault("mode", {})["opencode_config_path"] = opencode_cfg

    return overlay


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> BridgeConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `BridgeConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return BridgeConfig.model_validate(merged)


def load_config(
    config_paths: Optional[list[Path]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> BridgeConfig:
    """
    进程入口使用的完整加载流程：default.yaml → overlays → 环境变量。

    参数：
    - config_paths：YAML overlay 路径列表（可空）
    - env：环境变量映射（默认 os.environ）
    """

    layers: list[Dict[str, Any]] = [load_default_config_dict()]
    for path in config_paths or []:
        layers.append(_load_yaml_file(Path(path)))
    layers.append(env_overlay(env))
    return load_config_dicts(layers)

"""配置加载（YAML overlay + pydantic 校验 + 环境变量覆盖）。"""

from edit_bridge.config.loader import BridgeConfig, load_config, load_config_dicts

__all__ = ["BridgeConfig", "load_config", "load_config_dicts"]

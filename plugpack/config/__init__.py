"""配置和 Schema 模块

提供 YAML 配置文件的加载、验证和保存功能。
"""

from .schema import PackagerConfig, CorruptPolicy
from .loader import (
    ConfigLoader,
    ConfigValidationError,
    ConfigError,
    DEFAULT_CONFIG_NAME,
    load_config,
    load_config_for_root,
    save_config,
    config_loader,
)

__all__ = [
    # 主要类
    "PackagerConfig",
    "CorruptPolicy",
    "ConfigLoader",

    # 异常类
    "ConfigError",
    "ConfigValidationError",

    # 便捷函数
    "DEFAULT_CONFIG_NAME",
    "load_config",
    "load_config_for_root",
    "save_config",

    # 单例
    "config_loader",
]

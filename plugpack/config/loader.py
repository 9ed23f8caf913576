"""
配置加载器

负责从 YAML 文件加载配置并进行验证。
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import PackagerConfig

DEFAULT_CONFIG_NAME = "plugpack.yaml"


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get('loc', []))
            msg = error.get('msg', '未知错误')
            input_val = error.get('input', '')

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val:
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)


class ConfigLoader:
    """配置加载器"""

    # 需要相对配置文件目录解析的字段
    PATH_FIELDS = [
        ('layout', 'bin_dir'),
        ('layout', 'modules_dir'),
        ('layout', 'configs_dir'),
        ('layout', 'resources_dir'),
        ('layout', 'python_modules_dir'),
        ('layout', 'python_resources_dir'),
        ('registry', 'path'),
    ]

    def __init__(self):
        self.yaml = YAML(typ='safe')

    def load_from_file(self, config_path: Union[str, Path]) -> PackagerConfig:
        """从文件加载配置

        Args:
            config_path: 配置文件路径

        Returns:
            PackagerConfig: 验证后的配置实例

        Raises:
            ConfigError: 配置加载或验证错误
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigError(f"配置文件不存在: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"配置路径不是文件: {config_path}")

        if config_path.suffix.lower() not in ['.yaml', '.yml']:
            raise ConfigError(f"配置文件必须是 .yaml 或 .yml 格式: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigError(f"YAML 解析错误: {e}") from e
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}") from e

        # 空文件等价于全部使用默认值
        if raw_data is None:
            raw_data = {}

        if not isinstance(raw_data, dict):
            raise ConfigError("配置文件根级别必须是对象/字典格式")

        return self.load_from_dict(raw_data, config_path.parent)

    def load_from_dict(self, data: Dict[str, Any], base_path: Optional[Path] = None) -> PackagerConfig:
        """从字典加载配置

        Args:
            data: 配置数据字典
            base_path: 相对路径的基准路径

        Raises:
            ConfigValidationError: 配置验证错误
        """
        if base_path:
            data = copy.deepcopy(data)
            for field_path in self.PATH_FIELDS:
                self._resolve_field_path(data, field_path, base_path)

        try:
            return PackagerConfig.from_dict(data)
        except ValidationError as e:
            raise ConfigValidationError("配置验证失败", list(e.errors())) from e

    def load_for_root(self, root: Path, config_path: Optional[Union[str, Path]] = None) -> PackagerConfig:
        """加载项目根目录的配置

        显式指定的配置文件必须存在；未指定时查找根目录下的
        plugpack.yaml，不存在则以根目录为基准使用默认配置。
        """
        if config_path is not None:
            return self.load_from_file(config_path)

        candidate = Path(root) / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return self.load_from_file(candidate)
        return self.load_from_dict({}, Path(root))

    def save_to_file(self, config: PackagerConfig, output_path: Union[str, Path]) -> None:
        """保存配置到文件

        Raises:
            ConfigError: 保存错误
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        writer = YAML()
        writer.width = 4096
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                writer.dump(config.to_dict(), f)
        except OSError as e:
            raise ConfigError(f"保存配置文件失败: {e}") from e

    def _resolve_field_path(self, data: Dict[str, Any], field_path: tuple, base_path: Path) -> None:
        """解析单个字段的相对路径，缺省字段以默认值参与解析"""
        section, key = field_path
        current = data.setdefault(section, {})
        if not isinstance(current, dict):
            return

        if key in current:
            value = current[key]
        else:
            model_cls = PackagerConfig.model_fields[section].annotation
            value = model_cls.model_fields[key].default

        if isinstance(value, (str, Path)) and str(value):
            path_obj = Path(value)
            if not path_obj.is_absolute():
                current[key] = os.path.abspath(Path(base_path) / path_obj)


# 全局加载器实例
config_loader = ConfigLoader()


def load_config(config_path: Union[str, Path]) -> PackagerConfig:
    """便捷函数：加载配置文件"""
    return config_loader.load_from_file(config_path)


def load_config_for_root(root: Union[str, Path], config_path: Optional[Union[str, Path]] = None) -> PackagerConfig:
    """便捷函数：加载项目根目录的配置"""
    return config_loader.load_for_root(Path(root), config_path)


def save_config(config: PackagerConfig, output_path: Union[str, Path]) -> None:
    """便捷函数：保存配置文件"""
    config_loader.save_to_file(config, output_path)

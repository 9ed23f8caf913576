"""
配置 Schema 定义

使用 Pydantic 定义打包器的配置模型。所有字段都有默认值，
不提供配置文件时即按默认目录布局工作。
"""

from __future__ import annotations

import hashlib
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import BaseModel, Field, field_validator


class CorruptPolicy(str, Enum):
    """注册表文件损坏时的处理策略"""
    ABORT = "abort"
    RESET = "reset"


class LayoutModel(BaseModel):
    """输入/输出目录布局"""
    bin_dir: Union[str, Path] = Field(Path("bin"), description="基础归档与打包产物所在目录")
    modules_dir: Union[str, Path] = Field(Path("modules"), description="模块归档目录")
    configs_dir: Union[str, Path] = Field(Path("configs"), description="独立配置文件目录")
    resources_dir: Union[str, Path] = Field(Path("resources"), description="资源文件/目录树所在目录")
    python_modules_dir: Union[str, Path] = Field(Path("python_modules"), description="Python 模块目录（可选）")
    python_resources_dir: Union[str, Path] = Field(Path("python_resources"), description="Python 资源目录（可选）")

    @field_validator('*')
    @classmethod
    def validate_dir(cls, v: Union[str, Path]) -> Path:
        """统一转换为 Path"""
        if not str(v).strip():
            raise ValueError("目录路径不能为空")
        return Path(v)


class NamingModel(BaseModel):
    """基础归档命名约定"""
    base_prefix: str = Field("Backbone-Core", description="基础归档文件名前缀", min_length=1)
    archive_extension: str = Field(".jar", description="归档文件扩展名")
    packaged_suffix: str = Field("Packaged", description="打包产物文件名后缀", min_length=1)

    @field_validator('archive_extension')
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """扩展名必须以点开头"""
        if not v.startswith('.') or len(v) < 2:
            raise ValueError("扩展名必须以 '.' 开头，例如 .jar")
        return v

    def packaged_name(self, identifier: str) -> str:
        """打包产物文件名"""
        return f"{self.base_prefix}-{identifier}-{self.packaged_suffix}{self.archive_extension}"


class RegistryModel(BaseModel):
    """校验和注册表配置"""
    path: Union[str, Path] = Field(Path("bin/last_modified.json"), description="注册表文件路径")
    digest_algorithm: str = Field("md5", description="内容摘要算法")
    on_corrupt: CorruptPolicy = Field(CorruptPolicy.ABORT, description="注册表损坏时的处理策略")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: Union[str, Path]) -> Path:
        return Path(v)

    @field_validator('digest_algorithm')
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        """摘要算法必须可用且至少 128 位"""
        name = v.lower()
        if name not in hashlib.algorithms_available:
            raise ValueError(f"不支持的摘要算法: {v}")
        hasher = hashlib.new(name)
        if hasher.digest_size < 16:
            raise ValueError(f"摘要算法 {v} 不足 128 位")
        return name


class MergeModel(BaseModel):
    """合并行为配置"""
    signature_extensions: List[str] = Field(
        default_factory=lambda: [".sf", ".dsa", ".rsa"],
        description="合并模块归档时跳过的签名文件扩展名",
    )
    max_depth: int = Field(999, description="资源目录递归的最大深度", ge=1, le=10000)
    warn_on_collision: bool = Field(True, description="同一归档路径被多个来源写入时是否警告")

    @field_validator('signature_extensions')
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        """统一小写，并补全前导点"""
        cleaned = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith('.'):
                ext = '.' + ext
            if ext not in cleaned:
                cleaned.append(ext)
        return cleaned


class ConfigModel(BaseModel):
    """配置元信息模型"""
    version: int = Field(1, description="配置 schema 版本", ge=1)

    @field_validator('version')
    @classmethod
    def validate_config_version(cls, v: int) -> int:
        SUPPORTED_VERSIONS = [1]
        if v not in SUPPORTED_VERSIONS:
            raise ValueError(f"不支持的配置版本 {v}，支持的版本: {SUPPORTED_VERSIONS}")
        return v


class PackagerConfig(BaseModel):
    """Plugpack 主配置模型

    这是整个配置文件的根模型，包含所有配置部分。
    """

    config: ConfigModel = Field(default_factory=ConfigModel, description="配置元信息")
    layout: LayoutModel = Field(default_factory=LayoutModel, description="目录布局")
    naming: NamingModel = Field(default_factory=NamingModel, description="命名约定")
    registry: RegistryModel = Field(default_factory=RegistryModel, description="校验和注册表")
    merge: MergeModel = Field(default_factory=MergeModel, description="合并行为")

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        data = self.model_dump(exclude_none=True)

        def convert_values(obj):
            if isinstance(obj, dict):
                return {k: convert_values(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_values(item) for item in obj]
            elif isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, Path):
                return obj.as_posix()
            else:
                return obj

        return convert_values(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PackagerConfig':
        """从字典创建配置实例"""
        return cls.model_validate(data)

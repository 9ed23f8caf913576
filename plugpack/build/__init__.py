"""打包服务模块

提供增量打包的核心功能。
"""

from .build_context import (
    PackagingError,
    InputKind,
    Runtime,
    CandidateInput,
    InputSet,
    BaseArchiveTarget,
    InstallContext,
)
from .registry import (
    ChecksumRegistry,
    RegistryCorruptError,
    RegistryWriteError,
    DigestError,
    BASE_KEY,
    digest_of,
    digest_file,
)
from .archive import ArchiveMount, ArchiveReadError, ArchiveWriteError
from .collector import (
    InputCollector,
    MissingInputDirectoryError,
    InputReadError,
    collect_inputs,
    walk_regular_files,
)
from .planner import MergePlanner, PlannedCopy
from .installer import Installer, InstallResult
from .orchestrator import BuildOrchestrator, BuildReport, TargetResult, TargetStatus

__all__ = [
    # 数据结构与错误
    "PackagingError",
    "InputKind",
    "Runtime",
    "CandidateInput",
    "InputSet",
    "BaseArchiveTarget",
    "InstallContext",

    # 注册表
    "ChecksumRegistry",
    "RegistryCorruptError",
    "RegistryWriteError",
    "DigestError",
    "BASE_KEY",
    "digest_of",
    "digest_file",

    # 归档挂载
    "ArchiveMount",
    "ArchiveReadError",
    "ArchiveWriteError",

    # 输入收集
    "InputCollector",
    "MissingInputDirectoryError",
    "InputReadError",
    "collect_inputs",
    "walk_regular_files",

    # 规划、安装与编排
    "MergePlanner",
    "PlannedCopy",
    "Installer",
    "InstallResult",
    "BuildOrchestrator",
    "BuildReport",
    "TargetResult",
    "TargetStatus",
]

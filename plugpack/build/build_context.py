"""
构建上下文模块

定义打包过程中共享的数据结构和异常基类。
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from .archive import ArchiveMount
    from .planner import MergePlanner, PlannedCopy


class PackagingError(Exception):
    """打包错误基类，可携带出错的路径"""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        message = super().__str__()
        if self.path is not None and str(self.path) not in message:
            return f"{message}: {self.path}"
        return message


class InputReadError(PackagingError):
    """输入文件或目录无法读取"""
    pass


class InputKind(str, Enum):
    """候选输入的逻辑类型"""
    MODULE_ARCHIVE = "module-archive"
    CONFIG_FILE = "config-file"
    RESOURCE_FILE = "resource-file"
    RESOURCE_TREE = "resource-tree"


class Runtime(str, Enum):
    """候选输入所属的运行时"""
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class CandidateInput:
    """待合并的单个文件系统对象"""
    path: Path
    kind: InputKind
    runtime: Runtime = Runtime.PRIMARY

    @property
    def is_tree(self) -> bool:
        return self.kind == InputKind.RESOURCE_TREE


@dataclass
class InputSet:
    """一次运行扫描得到的全部候选输入"""
    configs: List[CandidateInput] = field(default_factory=list)
    modules: List[CandidateInput] = field(default_factory=list)
    resources: List[CandidateInput] = field(default_factory=list)
    python_modules: List[CandidateInput] = field(default_factory=list)
    python_resources: List[CandidateInput] = field(default_factory=list)

    def __len__(self) -> int:
        return (len(self.configs) + len(self.modules) + len(self.resources)
                + len(self.python_modules) + len(self.python_resources))


@dataclass
class BaseArchiveTarget:
    """一个待生成/更新的平台归档"""
    identifier: str
    source_path: Path
    target_path: Path
    invalidate_all: bool = False

    @property
    def namespace(self) -> str:
        """注册表命名空间，与标识符一致"""
        return self.identifier


@dataclass
class InstallContext:
    """一次安装（合并到单个目标归档）过程中的共享数据"""
    target: BaseArchiveTarget
    inputs: InputSet
    mount: 'ArchiveMount'
    planner: 'MergePlanner'
    signature_extensions: List[str] = field(default_factory=lambda: [".sf", ".dsa", ".rsa"])
    warn_on_collision: bool = True

    # 安装过程中生成的数据
    written: List['PlannedCopy'] = field(default_factory=list)
    skipped_entries: List[str] = field(default_factory=list)
    # 归档路径 -> (写入阶段, 来源注册表键)
    origins: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.written)

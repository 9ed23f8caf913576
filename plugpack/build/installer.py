"""
安装器

针对单个目标归档按固定顺序执行安装步骤：配置、模块、资源、
Python 模块、Python 资源。目标归档在整个过程中保持挂载，无论成功
与否都会刷新；只有刷新成功后，本次写入的摘要才会记录到注册表。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..config.schema import PackagerConfig
from ..utils.logging import LogStage, debug
from .archive import ArchiveMount
from .build_context import BaseArchiveTarget, InputSet, InstallContext
from .planner import MergePlanner, PlannedCopy
from .registry import ChecksumRegistry
from .steps.config_step import ConfigInstallStep
from .steps.install_step import InstallStep
from .steps.module_merge_step import ModuleMergeStep
from .steps.resource_step import ResourceInstallStep


@dataclass
class InstallResult:
    """安装结果"""
    target: BaseArchiveTarget
    written: List[PlannedCopy] = field(default_factory=list)
    skipped_entries: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.written)


def default_steps() -> List[InstallStep]:
    """默认安装步骤，顺序即写入顺序"""
    return [
        ConfigInstallStep(),
        ModuleMergeStep(),
        ResourceInstallStep("resources", "安装资源", LogStage.RESOURCES, "resources", "/resources"),
        ResourceInstallStep("python_modules", "安装 Python 模块", LogStage.PYTHON, "python_modules", "/python_modules"),
        ResourceInstallStep("python_resources", "安装 Python 资源", LogStage.PYTHON, "python_resources", "/python_resources"),
    ]


class Installer:
    """安装器，协调安装步骤的执行"""

    def __init__(self, config: PackagerConfig, root: Path, steps: Optional[List[InstallStep]] = None):
        self.config = config
        self.root = Path(root)
        self._steps = steps if steps is not None else default_steps()

    def get_steps(self) -> List[InstallStep]:
        return self._steps.copy()

    def install(self, target: BaseArchiveTarget, inputs: InputSet, registry: ChecksumRegistry) -> InstallResult:
        """把所有输入合并到目标归档

        Args:
            target: 目标归档，target_path 必须已存在
            inputs: 候选输入
            registry: 校验和注册表，成功落盘的写入会记录到 target 的命名空间

        Returns:
            InstallResult: 安装结果

        Raises:
            ArchiveReadError: 目标或模块归档无法读取
            ArchiveWriteError: 目标归档写入失败
            PackagingError: 输入文件无法读取
        """
        planner = MergePlanner(
            registry,
            target.namespace,
            target.invalidate_all,
            self.root,
            algorithm=self.config.registry.digest_algorithm,
            max_depth=self.config.merge.max_depth,
        )
        mount = ArchiveMount.open_writable(target.target_path)
        context = InstallContext(
            target=target,
            inputs=inputs,
            mount=mount,
            planner=planner,
            signature_extensions=list(self.config.merge.signature_extensions),
            warn_on_collision=self.config.merge.warn_on_collision,
        )

        try:
            with mount:
                for step in self._steps:
                    debug(f"执行步骤: {step.description}", stage=step.stage)
                    step.execute(context)
        finally:
            # 只有真正写入物理归档的内容才记录摘要
            if mount.flushed:
                for planned in context.written:
                    planner.commit(planned)

        return InstallResult(target=target, written=list(context.written),
                             skipped_entries=list(context.skipped_entries))

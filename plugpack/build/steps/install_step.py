"""
安装步骤基类模块

定义安装步骤的抽象接口，以及写入后记录进度与路径冲突的公共逻辑。
"""

from abc import ABC, abstractmethod

from ...utils.logging import info, warning
from ..build_context import InstallContext
from ..planner import PlannedCopy


class InstallStep(ABC):
    """安装步骤抽象基类"""

    def __init__(self, name: str, description: str, stage: str):
        self.name = name
        self.description = description
        self.stage = stage

    @abstractmethod
    def execute(self, context: InstallContext) -> None:
        """执行安装步骤"""
        pass

    def track_path(self, context: InstallContext, archive_path: str, origin: str) -> None:
        """记录归档路径的写入来源，不同阶段写入同一路径时给出警告

        后写入者覆盖先写入者。
        """
        previous = context.origins.get(archive_path)
        if previous and previous[0] != self.name and context.warn_on_collision:
            warning(
                f"归档路径冲突 {archive_path}: {origin} 覆盖了 {previous[1]} 写入的内容",
                stage=self.stage,
            )
        context.origins[archive_path] = (self.name, origin)

    def mark_written(self, context: InstallContext, planned: PlannedCopy) -> None:
        """记录一次成功写入并输出变更行"""
        context.written.append(planned)
        info(f"- {planned.registry_key}", stage=self.stage)

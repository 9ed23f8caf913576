"""
资源安装步骤

单个文件复制到 `<区域>/<文件名>`；目录按相对于其父目录的结构递归复制。
同一个步骤类同时用于主运行时资源、Python 模块与 Python 资源。
"""

from ..build_context import InstallContext
from .install_step import InstallStep


class ResourceInstallStep(InstallStep):
    """资源安装步骤

    Args:
        name: 步骤名称
        description: 步骤描述
        stage: 日志阶段
        input_group: InputSet 中的字段名
        archive_dir: 目标归档中的区域目录
    """

    def __init__(self, name: str, description: str, stage: str, input_group: str, archive_dir: str):
        super().__init__(name, description, stage)
        self.input_group = input_group
        self.archive_dir = archive_dir

    def execute(self, context: InstallContext) -> None:
        context.mount.create_directories(self.archive_dir)
        candidates = getattr(context.inputs, self.input_group)
        for planned in context.planner.plan_resources(candidates, self.archive_dir):
            context.mount.write_file(planned.archive_path, planned.source)
            self.track_path(context, planned.archive_path, planned.registry_key)
            self.mark_written(context, planned)

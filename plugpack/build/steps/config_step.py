"""
配置文件安装步骤

把独立配置文件复制到 `/configs/<文件名>`。同名文件不去重，后扫描者覆盖。
"""

from ...utils.logging import LogStage
from ..build_context import InstallContext
from .install_step import InstallStep

CONFIGS_DIR = "/configs"


class ConfigInstallStep(InstallStep):
    """配置文件安装步骤"""

    def __init__(self):
        super().__init__("configs", "安装配置文件", LogStage.CONFIGS)

    def execute(self, context: InstallContext) -> None:
        context.mount.create_directories(CONFIGS_DIR)
        for planned in context.planner.plan_flat(context.inputs.configs, CONFIGS_DIR):
            context.mount.write_file(planned.archive_path, planned.source)
            self.track_path(context, planned.archive_path, planned.registry_key)
            self.mark_written(context, planned)

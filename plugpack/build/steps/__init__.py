"""安装步骤：每个步骤负责目标归档中的一个区域"""

from .install_step import InstallStep
from .config_step import ConfigInstallStep
from .module_merge_step import ModuleMergeStep
from .resource_step import ResourceInstallStep

__all__ = [
    "InstallStep",
    "ConfigInstallStep",
    "ModuleMergeStep",
    "ResourceInstallStep",
]

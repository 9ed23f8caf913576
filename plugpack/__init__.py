"""
Plugpack - 平台归档增量打包工具

An incremental packager that merges module archives, configs and resources
into platform-specific runtime archives.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .config.schema import PackagerConfig
from .build.orchestrator import BuildOrchestrator

__all__ = ["PackagerConfig", "BuildOrchestrator", "__version__"]

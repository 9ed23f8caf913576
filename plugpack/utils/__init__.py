"""通用工具模块"""

from .logging import (
    configure_logging,
    LogStage,
    OutputLevel,
)

from .paths import (
    normalize_archive_path,
    join_archive_path,
    relative_key,
    format_size,
)

__all__ = [
    # 日志相关
    "configure_logging",
    "LogStage",
    "OutputLevel",

    # 路径相关
    "normalize_archive_path",
    "join_archive_path",
    "relative_key",
    "format_size",
]

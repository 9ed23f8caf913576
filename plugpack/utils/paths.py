"""
路径工具

提供本地路径与归档内路径之间的转换函数。
"""

import os
from pathlib import Path, PurePosixPath
from typing import Union


def normalize_archive_path(path: Union[str, PurePosixPath]) -> str:
    """规范化归档内路径为 `/a/b` 形式

    反斜杠统一为正斜杠，折叠重复分隔符，拒绝上级目录引用。

    Raises:
        ValueError: 路径包含 `..`
    """
    text = str(path).replace('\\', '/')
    parts = [p for p in text.split('/') if p and p != '.']
    if any(p == '..' for p in parts):
        raise ValueError(f"归档路径不允许包含上级目录引用: {path}")
    return '/' + '/'.join(parts)


def join_archive_path(*parts: str) -> str:
    """拼接归档内路径"""
    return normalize_archive_path('/'.join(parts))


def relative_key(path: Path, root: Path) -> str:
    """计算文件相对于项目根目录的注册表键

    位于根目录之外的文件使用其绝对 POSIX 路径。
    """
    absolute = Path(os.path.abspath(path))
    try:
        return absolute.relative_to(Path(os.path.abspath(root))).as_posix()
    except ValueError:
        return absolute.as_posix()


def format_size(size_bytes: int) -> str:
    """格式化文件大小

    Args:
        size_bytes: 字节数

    Returns:
        str: 格式化的大小字符串
    """
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    else:
        return f"{size:.1f} {units[unit_index]}"

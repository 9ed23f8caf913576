"""
输入收集器

扫描固定的输入目录，生成本次运行的候选输入集合，并提供带深度限制、
可防止符号链接循环的目录遍历。
"""

import os
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from ..config.schema import PackagerConfig
from ..utils.logging import LogStage, debug, warning
from .build_context import CandidateInput, InputKind, InputReadError, InputSet, PackagingError, Runtime


class MissingInputDirectoryError(PackagingError):
    """必需的输入目录不存在"""
    pass


def walk_regular_files(directory: Path, max_depth: int = 999) -> Iterator[Path]:
    """遍历目录下的所有普通文件

    目录符号链接会被跟随，但同一真实目录只访问一次；超过 max_depth 的
    层级不再深入。同一层内按名称排序以保证输出稳定。

    Args:
        directory: 起始目录（深度 0）
        max_depth: 最大深度，直接子文件的深度为 1

    Raises:
        InputReadError: 目录无法列出
    """
    visited: Set[str] = set()
    stack: List[Tuple[Path, int]] = [(Path(directory), 0)]

    while stack:
        current, depth = stack.pop()
        real = os.path.realpath(current)
        if real in visited:
            debug(f"跳过重复访问的目录: {current}", stage=LogStage.SCAN)
            continue
        visited.add(real)

        try:
            children = sorted(current.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise InputReadError(f"无法读取目录: {e}", current) from e

        subdirs = []
        for child in children:
            if child.is_dir():
                if depth + 1 < max_depth:
                    subdirs.append(child)
                else:
                    warning(f"超过最大深度 {max_depth}，跳过目录: {child}", stage=LogStage.SCAN)
            elif child.is_file() and depth + 1 <= max_depth:
                yield child

        # 逆序入栈，使子目录按名称顺序出栈
        for subdir in reversed(subdirs):
            stack.append((subdir, depth + 1))


class InputCollector:
    """输入收集器

    负责扫描模块、配置、资源及 Python 模块/资源目录。
    """

    def __init__(self, config: PackagerConfig, root: Path):
        self.config = config
        self.root = Path(root)

    def _resolve(self, path: Path) -> Path:
        return self.root / Path(path)

    def _list_directory(self, directory: Path, required: bool) -> Optional[List[Path]]:
        """列出目录直接子项，按名称排序

        Raises:
            MissingInputDirectoryError: 必需目录不存在
            InputReadError: 目录无法列出
        """
        if not directory.is_dir():
            if required:
                raise MissingInputDirectoryError("必需的输入目录不存在", directory)
            debug(f"可选目录不存在，跳过: {directory}", stage=LogStage.SCAN)
            return None
        try:
            return sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise InputReadError(f"无法读取目录: {e}", directory) from e

    def collect(self) -> InputSet:
        """扫描所有输入目录

        Raises:
            MissingInputDirectoryError: 模块/配置/资源目录缺失
        """
        layout = self.config.layout
        inputs = InputSet()

        for item in self._list_directory(self._resolve(layout.configs_dir), required=True):
            if item.is_file():
                inputs.configs.append(CandidateInput(item, InputKind.CONFIG_FILE))
            else:
                warning(f"配置目录中的子目录不会被打包: {item}", stage=LogStage.SCAN)

        for item in self._list_directory(self._resolve(layout.modules_dir), required=True):
            if item.is_file():
                inputs.modules.append(CandidateInput(item, InputKind.MODULE_ARCHIVE))
            else:
                warning(f"模块目录中的子目录不会被合并: {item}", stage=LogStage.SCAN)

        for item in self._list_directory(self._resolve(layout.resources_dir), required=True):
            inputs.resources.append(self._resource_candidate(item, Runtime.PRIMARY))

        python_modules = self._list_directory(self._resolve(layout.python_modules_dir), required=False)
        for item in python_modules or []:
            if item.is_dir():
                inputs.python_modules.append(CandidateInput(item, InputKind.RESOURCE_TREE, Runtime.SECONDARY))
            else:
                inputs.python_modules.append(CandidateInput(item, InputKind.MODULE_ARCHIVE, Runtime.SECONDARY))

        python_resources = self._list_directory(self._resolve(layout.python_resources_dir), required=False)
        for item in python_resources or []:
            inputs.python_resources.append(self._resource_candidate(item, Runtime.SECONDARY))

        debug(
            f"候选输入: configs={len(inputs.configs)} modules={len(inputs.modules)} "
            f"resources={len(inputs.resources)} python_modules={len(inputs.python_modules)} "
            f"python_resources={len(inputs.python_resources)}",
            stage=LogStage.SCAN,
        )
        return inputs

    @staticmethod
    def _resource_candidate(item: Path, runtime: Runtime) -> CandidateInput:
        kind = InputKind.RESOURCE_TREE if item.is_dir() else InputKind.RESOURCE_FILE
        return CandidateInput(item, kind, runtime)


def collect_inputs(config: PackagerConfig, root: Path) -> InputSet:
    """便捷函数：收集候选输入"""
    return InputCollector(config, root).collect()

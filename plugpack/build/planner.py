"""
合并规划器

针对一个基础归档，逐个判断候选输入是否需要（重新）写入。规划器只做
判断，不修改注册表；写入成功后由安装器调用 `commit` 记录摘要。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..utils.paths import join_archive_path, relative_key
from .build_context import CandidateInput, InputKind
from .collector import walk_regular_files
from .registry import ChecksumRegistry, digest_file


@dataclass(frozen=True)
class PlannedCopy:
    """一次需要执行的写入

    `archive_path` 为 None 表示模块归档，需要逐条目合并而不是整体复制。
    """
    source: Path
    registry_key: str
    checksum: str
    kind: InputKind
    archive_path: Optional[str] = None


class MergePlanner:
    """合并规划器

    Args:
        registry: 校验和注册表
        namespace: 基础归档对应的注册表命名空间
        invalidate: 是否对本次运行执行完整失效
        root: 项目根目录，注册表键相对于它计算
        algorithm: 摘要算法
        max_depth: 资源目录遍历的最大深度
    """

    def __init__(self, registry: ChecksumRegistry, namespace: str, invalidate: bool,
                 root: Path, algorithm: str = "md5", max_depth: int = 999):
        self.registry = registry
        self.namespace = namespace
        self.invalidate = invalidate
        self.root = Path(root)
        self.algorithm = algorithm
        self.max_depth = max_depth

    def registry_key(self, path: Path) -> str:
        return relative_key(path, self.root)

    def plan_file(self, source: Path, kind: InputKind, archive_path: Optional[str]) -> Optional[PlannedCopy]:
        """对单个文件做变更判断，未变化返回 None

        Raises:
            DigestError: 文件无法读取
        """
        key = self.registry_key(source)
        checksum = digest_file(source, self.algorithm)
        if self.registry.is_unchanged(self.namespace, key, checksum, self.invalidate):
            return None
        return PlannedCopy(source=source, registry_key=key, checksum=checksum,
                           kind=kind, archive_path=archive_path)

    def plan_flat(self, candidates: Iterable[CandidateInput], archive_dir: str) -> Iterator[PlannedCopy]:
        """单文件输入：复制为 `<archive_dir>/<文件名>`"""
        for candidate in candidates:
            planned = self.plan_file(candidate.path, candidate.kind,
                                     join_archive_path(archive_dir, candidate.path.name))
            if planned:
                yield planned

    def plan_modules(self, candidates: Iterable[CandidateInput]) -> Iterator[PlannedCopy]:
        """模块归档：以归档文件自身的摘要判断，内容在写入时逐条目合并"""
        for candidate in candidates:
            planned = self.plan_file(candidate.path, InputKind.MODULE_ARCHIVE, None)
            if planned:
                yield planned

    def plan_tree(self, candidate: CandidateInput, archive_dir: str) -> Iterator[PlannedCopy]:
        """目录输入：保留相对于目录父级的结构，写到 archive_dir 之下"""
        base = candidate.path.parent
        for file_path in walk_regular_files(candidate.path, self.max_depth):
            relative = file_path.relative_to(base).as_posix()
            planned = self.plan_file(file_path, InputKind.RESOURCE_FILE,
                                     join_archive_path(archive_dir, relative))
            if planned:
                yield planned

    def plan_resources(self, candidates: Iterable[CandidateInput], archive_dir: str) -> Iterator[PlannedCopy]:
        """资源输入：单文件平铺，目录树保留结构"""
        for candidate in candidates:
            if candidate.is_tree:
                yield from self.plan_tree(candidate, archive_dir)
            else:
                yield from self.plan_flat([candidate], archive_dir)

    def commit(self, planned: PlannedCopy) -> None:
        """记录一次已成功落盘的写入"""
        self.registry.record(self.namespace, planned.registry_key, planned.checksum)

"""
打包编排器

顶层驱动：加载注册表，扫描输入与基础归档，按过滤条件逐个调用安装器，
最后无论各归档结果如何都保存注册表。单个基础归档失败不会影响其他归档。
"""

import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..config.schema import PackagerConfig
from ..utils.logging import LogStage, debug, error, info, success, warning
from ..utils.paths import format_size, relative_key
from .archive import ArchiveWriteError
from .build_context import BaseArchiveTarget, InputSet, PackagingError
from .collector import InputCollector, MissingInputDirectoryError
from .installer import Installer
from .registry import BASE_KEY, ChecksumRegistry, digest_file


class TargetStatus:
    """单个基础归档的处理结果"""
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class TargetResult:
    """单个基础归档的处理结果"""
    identifier: str
    output_path: Path
    status: str
    written: List[str] = field(default_factory=list)
    skipped_entries: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status == TargetStatus.UPDATED


@dataclass
class BuildReport:
    """一次运行的汇总结果"""
    results: List[TargetResult] = field(default_factory=list)
    unmatched_filters: List[str] = field(default_factory=list)
    build_time: float = 0.0

    @property
    def success(self) -> bool:
        return all(r.status != TargetStatus.FAILED for r in self.results)

    @property
    def failed(self) -> List[TargetResult]:
        return [r for r in self.results if r.status == TargetStatus.FAILED]

    def get(self, identifier: str) -> Optional[TargetResult]:
        for result in self.results:
            if result.identifier.lower() == identifier.lower():
                return result
        return None


class BuildOrchestrator:
    """打包编排器

    Args:
        config: 打包配置，布局路径相对于 root 解析
        root: 项目根目录，注册表键相对于它计算
    """

    def __init__(self, config: Optional[PackagerConfig] = None, root: Optional[Path] = None):
        self.config = config or PackagerConfig()
        self.root = Path(root) if root is not None else Path.cwd()
        self.installer = Installer(self.config, self.root)

    @property
    def registry_path(self) -> Path:
        return self.root / Path(self.config.registry.path)

    @property
    def bin_dir(self) -> Path:
        return self.root / Path(self.config.layout.bin_dir)

    def parse_identifier(self, file_name: str) -> Optional[str]:
        """从基础归档文件名中提取标识符，不是基础归档时返回 None"""
        naming = self.config.naming
        prefix = f"{naming.base_prefix}-"
        if not file_name.startswith(prefix) or not file_name.endswith(naming.archive_extension):
            return None
        if file_name.endswith(f"{naming.packaged_suffix}{naming.archive_extension}"):
            return None
        identifier = file_name[len(prefix):-len(naming.archive_extension)]
        return identifier or None

    def discover_targets(self) -> List[BaseArchiveTarget]:
        """扫描输出目录中的基础归档

        Raises:
            MissingInputDirectoryError: 输出目录不存在
        """
        if not self.bin_dir.is_dir():
            raise MissingInputDirectoryError("基础归档目录不存在", self.bin_dir)

        targets = []
        for item in sorted(self.bin_dir.iterdir(), key=lambda p: p.name):
            if not item.is_file():
                continue
            identifier = self.parse_identifier(item.name)
            if identifier is None:
                continue
            targets.append(BaseArchiveTarget(
                identifier=identifier,
                source_path=item,
                target_path=self.bin_dir / self.config.naming.packaged_name(identifier),
            ))
        debug(f"发现 {len(targets)} 个基础归档: {[t.identifier for t in targets]}", stage=LogStage.SCAN)
        return targets

    @staticmethod
    def select_targets(targets: List[BaseArchiveTarget],
                       filters: Optional[Iterable[str]]) -> Tuple[List[BaseArchiveTarget], List[str]]:
        """按标识符过滤（大小写不敏感），空过滤条件表示全部

        Returns:
            (选中的归档, 未匹配任何归档的过滤条件)
        """
        wanted = {f.strip().lower() for f in (filters or []) if f.strip()}
        if not wanted:
            return list(targets), []
        selected = [t for t in targets if t.identifier.lower() in wanted]
        found = {t.identifier.lower() for t in selected}
        return selected, sorted(wanted - found)

    def run(self, filters: Optional[Iterable[str]] = None) -> BuildReport:
        """执行一次打包

        Args:
            filters: 需要处理的归档标识符，None 或空表示全部

        Returns:
            BuildReport: 汇总结果；单个归档失败体现在结果中

        Raises:
            RegistryCorruptError: 注册表损坏且策略为 abort
            MissingInputDirectoryError: 必需输入目录不存在
            RegistryWriteError: 注册表保存失败
        """
        start_time = time.time()
        report = BuildReport()

        registry = ChecksumRegistry.load(self.registry_path, self.config.registry.on_corrupt)
        try:
            inputs = InputCollector(self.config, self.root).collect()
            selected, report.unmatched_filters = self.select_targets(self.discover_targets(), filters)

            for identifier in report.unmatched_filters:
                warning(f"没有与 '{identifier}' 匹配的基础归档", stage=LogStage.SCAN)

            for target in selected:
                report.results.append(self._process_target(target, inputs, registry))
        finally:
            registry.save(self.registry_path)

        report.build_time = time.time() - start_time
        success("打包完成!", stage=LogStage.DONE)
        return report

    def _process_target(self, target: BaseArchiveTarget, inputs: InputSet,
                        registry: ChecksumRegistry) -> TargetResult:
        """处理单个基础归档，错误被限制在该归档内"""
        info(f"重新打包 {target.identifier} 平台归档中自上次打包以来变化的文件:", stage=LogStage.BASE)
        try:
            result = self._package(target, inputs, registry)
        except PackagingError as e:
            error(f"{target.identifier} 打包失败: {e}", stage=LogStage.BASE)
            return TargetResult(
                identifier=target.identifier,
                output_path=target.target_path,
                status=TargetStatus.FAILED,
                error=str(e),
            )

        if result.changed:
            size = format_size(target.target_path.stat().st_size)
            success(f"平台归档打包成功: {target.target_path.resolve()} ({size})", stage=LogStage.BASE)
        else:
            info("未发现变更文件", stage=LogStage.BASE)
        return result

    def _package(self, target: BaseArchiveTarget, inputs: InputSet,
                 registry: ChecksumRegistry) -> TargetResult:
        algorithm = self.config.registry.digest_algorithm
        base_checksum = digest_file(target.source_path, algorithm)
        base_changed = not registry.is_unchanged(target.namespace, BASE_KEY, base_checksum)

        if base_changed or not target.target_path.exists():
            if not base_changed:
                debug(f"打包产物不存在，重新复制基础归档: {target.target_path}", stage=LogStage.BASE)
            info(f"- {relative_key(target.source_path, self.root)}", stage=LogStage.BASE)
            self._copy_base(target)
            target.invalidate_all = True

        install_result = self.installer.install(target, inputs, registry)
        # 基础归档摘要在安装完成后才记录，失败时下次运行会重新完整构建
        registry.record(target.namespace, BASE_KEY, base_checksum)

        updated = target.invalidate_all or install_result.changed
        return TargetResult(
            identifier=target.identifier,
            output_path=target.target_path,
            status=TargetStatus.UPDATED if updated else TargetStatus.UNCHANGED,
            written=[p.registry_key for p in install_result.written],
            skipped_entries=install_result.skipped_entries,
        )

    @staticmethod
    def _copy_base(target: BaseArchiveTarget) -> None:
        """复制基础归档到目标路径，先写临时文件再替换

        Raises:
            ArchiveWriteError: 复制失败
        """
        target_path = target.target_path
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target_path.name}.", suffix=".tmp",
                                            dir=str(target_path.parent))
            os.close(fd)
            shutil.copyfile(target.source_path, tmp_name)
            os.replace(tmp_name, target_path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ArchiveWriteError(f"复制基础归档失败: {e}", target_path) from e

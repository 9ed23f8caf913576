"""
模块归档合并步骤

把发生变化的模块归档逐条目合并到目标归档的同名路径。签名相关文件
（.sf/.dsa/.rsa 等）不会被合并，否则合并多个来源后的归档签名将失效。
名称包含上级目录引用的条目同样被跳过，并给出警告。
"""

from typing import List

from ...utils.logging import LogStage, debug, warning
from ..build_context import InstallContext
from ..planner import PlannedCopy
from .install_step import InstallStep


def is_signature_entry(archive_path: str, extensions: List[str]) -> bool:
    """条目文件名（小写）是否以签名扩展名结尾"""
    file_name = archive_path.rsplit('/', 1)[-1].lower()
    return any(file_name.endswith(ext) for ext in extensions)


class ModuleMergeStep(InstallStep):
    """模块归档合并步骤"""

    def __init__(self):
        super().__init__("modules", "合并模块归档", LogStage.MODULES)

    def execute(self, context: InstallContext) -> None:
        for planned in context.planner.plan_modules(context.inputs.modules):
            self._merge(context, planned)
            self.mark_written(context, planned)

    def _merge(self, context: InstallContext, planned: PlannedCopy) -> None:
        """逐条目复制嵌套归档

        Raises:
            ArchiveReadError: 模块归档无法读取
            ArchiveWriteError: 目标归档写入失败
        """
        copied = 0
        with context.mount.mount_archive(planned.source) as nested:
            for info in nested.rejected_entries:
                context.skipped_entries.append(info.filename)
                warning(f"跳过非法条目 {info.filename} ({planned.registry_key})", stage=self.stage)
            for entry_path, is_file in nested.walk('/'):
                if not is_file:
                    continue
                if is_signature_entry(entry_path, context.signature_extensions):
                    context.skipped_entries.append(entry_path)
                    debug(f"跳过签名文件 {entry_path} ({planned.registry_key})", stage=self.stage)
                    continue
                with nested.open(entry_path) as stream:
                    context.mount.write_file(entry_path, stream)
                self.track_path(context, entry_path, planned.registry_key)
                copied += 1
        debug(f"{planned.registry_key}: 合并 {copied} 个条目", stage=self.stage)

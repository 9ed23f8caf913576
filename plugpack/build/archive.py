"""
归档挂载

把一个 zip/jar 归档挂载为可写的层级文件存储。写入的条目先暂存到
临时目录，关闭时统一刷新到物理归档：

- 只新增条目时，以追加模式写入，不触碰已有条目；
- 覆盖了已有条目时，重建到同目录临时文件后原子替换。

归档内路径统一使用 `/a/b` 形式，对应 zip 条目名 `a/b`。
"""

import os
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional, Set, Tuple, Union

from ..utils.logging import LogStage, debug
from ..utils.paths import normalize_archive_path
from .build_context import PackagingError

WriteSource = Union[bytes, Path, BinaryIO]

# 读取或解压条目时可能出现的错误
READ_ERRORS = (OSError, EOFError, zipfile.BadZipFile, zlib.error)


class ArchiveReadError(PackagingError):
    """读取归档失败"""
    pass


class ArchiveWriteError(PackagingError):
    """写入归档失败"""
    pass


def _entry_name(archive_path: str) -> str:
    """`/a/b` -> `a/b`"""
    return normalize_archive_path(archive_path).lstrip('/')


def _index_name(info: zipfile.ZipInfo) -> str:
    """物理条目名规范化后的索引键，目录以 `/` 结尾

    Raises:
        ValueError: 条目名包含上级目录引用
    """
    name = _entry_name(info.filename)
    if name and info.filename.replace('\\', '/').endswith('/'):
        name += '/'
    return name


class ArchiveMount:
    """归档挂载

    通过 `open_writable` 或 `open_readonly` 获取，作为上下文管理器使用。
    退出时无论是否发生异常都会刷新并释放归档；刷新成功后 `flushed` 为 True。
    """

    def __init__(self, path: Union[str, Path], writable: bool = False,
                 compression: int = zipfile.ZIP_DEFLATED):
        self.path = Path(path)
        self.writable = writable
        self.compression = compression
        self.flushed = False
        self._closed = False
        self._staging: Optional[tempfile.TemporaryDirectory] = None
        # 条目名 -> 暂存文件；目录条目对应 None
        self._staged: Dict[str, Optional[Path]] = {}
        self._counter = 0

        try:
            self._zip = zipfile.ZipFile(self.path, 'r')
            infos = self._zip.infolist()
        except READ_ERRORS as e:
            raise ArchiveReadError(f"无法打开归档: {e}", self.path) from e

        # 规范化条目名 -> ZipInfo；walk、is_file 与 open 都只使用这个索引
        self._entries: Dict[str, zipfile.ZipInfo] = {}
        # 无法规范化的条目（例如包含 `..`），不参与读取，重建时原样保留
        self.rejected_entries: List[zipfile.ZipInfo] = []
        for info in infos:
            try:
                name = _index_name(info)
            except ValueError:
                self.rejected_entries.append(info)
                continue
            if name:
                self._entries[name] = info

        if writable:
            self._staging = tempfile.TemporaryDirectory(prefix="plugpack_")

    @classmethod
    def open_writable(cls, path: Union[str, Path]) -> 'ArchiveMount':
        """以可写方式挂载已有归档"""
        return cls(path, writable=True)

    @classmethod
    def open_readonly(cls, path: Union[str, Path]) -> 'ArchiveMount':
        """以只读方式挂载归档"""
        return cls(path, writable=False)

    def mount_archive(self, path: Union[str, Path]) -> 'ArchiveMount':
        """只读挂载一个嵌套归档（例如待合并的模块归档）"""
        return ArchiveMount.open_readonly(path)

    def __enter__(self) -> 'ArchiveMount':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---- 查询 ----

    def _all_names(self) -> Set[str]:
        return set(self._entries) | set(self._staged)

    def exists(self, path: str) -> bool:
        """路径是否存在（包含由文件隐含的父目录）"""
        name = _entry_name(path)
        if not name:
            return True
        prefix = name + '/'
        return any(n == name or n == prefix or n.startswith(prefix) for n in self._all_names())

    def is_file(self, path: str) -> bool:
        name = _entry_name(path)
        if name in self._staged:
            return self._staged[name] is not None
        info = self._entries.get(name)
        return info is not None and not info.is_dir()

    def is_dir(self, path: str) -> bool:
        return self.exists(path) and not self.is_file(path)

    def walk(self, root: str = '/') -> Iterator[Tuple[str, bool]]:
        """遍历 root 下的所有条目

        惰性生成 `(归档路径, 是否文件)`，每个路径只出现一次，隐含的父目录
        也会生成。遍历只对应调用时的快照，且不可重新开始。
        """
        root_name = _entry_name(root)
        prefix = root_name + '/' if root_name else ''
        seen_dirs: Set[str] = set()

        for name in sorted(self._all_names()):
            if not name.startswith(prefix) or name == prefix:
                continue
            is_dir_entry = name.endswith('/') or (name in self._staged and self._staged[name] is None)
            clean = name.rstrip('/')
            parts = clean[len(prefix):].split('/')

            # 先生成尚未出现过的父目录
            for depth in range(1, len(parts)):
                parent = prefix + '/'.join(parts[:depth])
                if parent not in seen_dirs:
                    seen_dirs.add(parent)
                    yield '/' + parent, False

            if is_dir_entry:
                if clean not in seen_dirs:
                    seen_dirs.add(clean)
                    yield '/' + clean, False
            else:
                yield '/' + clean, True

    def open(self, path: str) -> BinaryIO:
        """以二进制流打开归档内文件

        Raises:
            ArchiveReadError: 条目不存在或无法读取
        """
        try:
            name = _entry_name(path)
        except ValueError as e:
            raise ArchiveReadError(str(e), self.path) from e
        try:
            staged = self._staged.get(name)
            if staged is not None:
                return open(staged, 'rb')
            if name in self._entries:
                return self._zip.open(self._entries[name], 'r')
        except READ_ERRORS as e:
            raise ArchiveReadError(f"读取归档条目失败 {path}: {e}", self.path) from e
        raise ArchiveReadError(f"归档中不存在文件 {path}", self.path)

    def read_bytes(self, path: str) -> bytes:
        """读取归档内文件的全部内容

        Raises:
            ArchiveReadError: 条目不存在、无法读取或数据损坏
        """
        with self.open(path) as stream:
            try:
                return stream.read()
            except READ_ERRORS as e:
                raise ArchiveReadError(f"读取归档条目失败 {path}: {e}", self.path) from e

    # ---- 写入 ----

    def _require_writable(self, path: str) -> None:
        if not self.writable or self._closed:
            raise ArchiveWriteError(f"归档未以可写方式挂载，无法写入 {path}", self.path)

    def create_directories(self, path: str) -> None:
        """创建目录及其所有父目录，已存在时不报错"""
        self._require_writable(path)
        try:
            name = _entry_name(path)
        except ValueError as e:
            raise ArchiveWriteError(str(e), path) from e
        if not name:
            return
        parts = name.split('/')
        for depth in range(1, len(parts) + 1):
            dir_name = '/'.join(parts[:depth]) + '/'
            if self.is_file('/' + dir_name.rstrip('/')):
                raise ArchiveWriteError(f"路径已作为文件存在，无法创建目录 /{dir_name}", self.path)
            if dir_name not in self._entries and dir_name not in self._staged:
                self._staged[dir_name] = None

    def write_file(self, path: str, source: WriteSource) -> None:
        """写入文件，自动创建父目录并覆盖同名条目

        Args:
            path: 归档内路径
            source: 字节、本地文件路径或二进制流

        Raises:
            ArchiveWriteError: 写入失败，携带出错的归档内路径
        """
        self._require_writable(path)
        try:
            name = _entry_name(path)
        except ValueError as e:
            raise ArchiveWriteError(str(e), path) from e
        if not name:
            raise ArchiveWriteError("无法写入归档根目录", path)

        parent = name.rsplit('/', 1)[0] if '/' in name else ''
        if parent:
            self.create_directories('/' + parent)

        self._counter += 1
        staged_file = Path(self._staging.name) / f"{self._counter:08d}"
        try:
            if isinstance(source, bytes):
                staged_file.write_bytes(source)
            elif isinstance(source, Path):
                shutil.copyfile(source, staged_file)
            else:
                with open(staged_file, 'wb') as dst:
                    shutil.copyfileobj(source, dst, 64 * 1024)
        except READ_ERRORS as e:
            raise ArchiveWriteError(f"写入归档条目失败: {e}", path) from e

        self._staged[name] = staged_file

    # ---- 刷新与关闭 ----

    def _overwrites_existing(self) -> bool:
        return any(name in self._entries for name, staged in self._staged.items() if staged is not None)

    def _write_staged(self, zf: zipfile.ZipFile) -> None:
        for name, staged in self._staged.items():
            if staged is None:
                if name not in self._entries:
                    zf.writestr(zipfile.ZipInfo(name), b'')
                continue
            zf.write(staged, name, compress_type=self.compression)

    def _flush(self) -> None:
        if not self._staged:
            self._zip.close()
            return

        if not self._overwrites_existing():
            debug(f"追加 {len(self._staged)} 个条目: {self.path}", stage=LogStage.WRITE)
            self._zip.close()
            with zipfile.ZipFile(self.path, 'a') as zf:
                self._write_staged(zf)
            return

        debug(f"重建归档（{len(self._staged)} 个暂存条目）: {self.path}", stage=LogStage.WRITE)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_name, 'w') as out:
                kept = [(name, info) for name, info in self._entries.items() if name not in self._staged]
                kept.extend((info.filename, info) for info in self.rejected_entries)
                for name, info in kept:
                    copied = zipfile.ZipInfo(name, date_time=info.date_time)
                    copied.compress_type = info.compress_type
                    copied.external_attr = info.external_attr
                    copied.comment = info.comment
                    if name.endswith('/'):
                        out.writestr(copied, b'')
                        continue
                    copied.file_size = info.file_size
                    with self._zip.open(info, 'r') as src, \
                            out.open(copied, 'w', force_zip64=info.file_size > zipfile.ZIP64_LIMIT) as dst:
                        shutil.copyfileobj(src, dst, 64 * 1024)
                self._write_staged(out)
            self._zip.close()
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def close(self) -> None:
        """刷新暂存写入并释放资源

        Raises:
            ArchiveWriteError: 刷新失败
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self.writable:
                self._flush()
                self.flushed = True
        except READ_ERRORS + (zipfile.LargeZipFile,) as e:
            raise ArchiveWriteError(f"刷新归档失败: {e}", self.path) from e
        finally:
            self._zip.close()
            if self._staging is not None:
                self._staging.cleanup()
                self._staging = None

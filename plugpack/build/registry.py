"""
校验和注册表

按基础归档命名空间记录每个输入文件的内容摘要，用于判断文件
自上次打包以来是否发生变化。持久化格式为两级 JSON 对象：

    { "<归档标识>": { "<相对路径>": "<十六进制摘要>", ... }, ... }

打包流程不直接使用 `check_and_update`：它在判断的同时写入新摘要，而摘要
必须等写入真正落盘后才能记录。规划器用 `is_unchanged` 判断，安装器在归档
刷新成功后再调用 `record`。
"""

import hashlib
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from ..config.schema import CorruptPolicy
from ..utils.logging import LogStage, debug, warning
from .build_context import InputReadError, PackagingError

# 基础归档自身摘要的保留键
BASE_KEY = "_base"

DEFAULT_ALGORITHM = "md5"


class RegistryCorruptError(PackagingError):
    """注册表文件存在但无法解析为预期结构"""
    pass


class RegistryWriteError(PackagingError):
    """注册表文件写入失败"""
    pass


class DigestError(InputReadError):
    """读取输入文件计算摘要失败"""
    pass


def digest_of(data: Union[bytes, str], algorithm: str = DEFAULT_ALGORITHM) -> str:
    """计算内容摘要

    Args:
        data: 内容，字符串按 UTF-8 编码
        algorithm: 摘要算法名称

    Returns:
        str: 定长十六进制摘要（保留前导零）
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.new(algorithm, data).hexdigest()


def digest_file(file_path: Path, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = 64 * 1024) -> str:
    """分块读取文件计算摘要

    Raises:
        DigestError: 文件读取失败
    """
    hasher = hashlib.new(algorithm)
    try:
        with open(file_path, 'rb') as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise DigestError(f"读取文件失败: {e}", file_path) from e
    return hasher.hexdigest()


class ChecksumRegistry:
    """校验和注册表

    一个注册表实例由编排器持有并显式传递给安装流程，不使用进程级单例。
    所有修改操作由可重入锁保护。
    """

    def __init__(
        self,
        namespaces: Optional[Dict[str, Dict[str, str]]] = None,
        extras: Optional[Dict[str, Any]] = None,
    ):
        self._namespaces: Dict[str, Dict[str, str]] = {
            name: dict(entries) for name, entries in (namespaces or {}).items()
        }
        # 未识别的顶层键原样保留，保存时写回
        self._extras: Dict[str, Any] = dict(extras or {})
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: Union[str, Path], on_corrupt: CorruptPolicy = CorruptPolicy.ABORT) -> 'ChecksumRegistry':
        """从文件加载注册表

        文件不存在时返回空注册表。

        Args:
            path: 注册表文件路径
            on_corrupt: 文件损坏时的策略；ABORT 抛出异常，RESET 记录警告后返回空注册表

        Raises:
            RegistryCorruptError: 文件损坏且策略为 ABORT
        """
        path = Path(path)
        if not path.exists():
            debug(f"注册表不存在，使用空注册表: {path}", stage=LogStage.REGISTRY)
            return cls()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            registry = cls.from_dict(raw)
        except (OSError, ValueError, RegistryCorruptError) as e:
            if on_corrupt == CorruptPolicy.RESET:
                warning(f"注册表无法解析，将执行完整重建: {path} ({e})", stage=LogStage.REGISTRY)
                return cls()
            if isinstance(e, RegistryCorruptError):
                e.path = path
                raise
            raise RegistryCorruptError(f"注册表无法解析: {e}", path) from e

        debug(f"已加载注册表: {path} ({len(registry._namespaces)} 个命名空间)", stage=LogStage.REGISTRY)
        return registry

    @classmethod
    def from_dict(cls, raw: Any) -> 'ChecksumRegistry':
        """从已解析的 JSON 数据构建注册表

        Raises:
            RegistryCorruptError: 数据结构不符合两级映射
        """
        if not isinstance(raw, dict):
            raise RegistryCorruptError("注册表根级别必须是对象")

        namespaces: Dict[str, Dict[str, str]] = {}
        extras: Dict[str, Any] = {}
        for name, entries in raw.items():
            if not isinstance(entries, dict):
                extras[name] = entries
                continue
            for rel_path, checksum in entries.items():
                if not isinstance(checksum, str):
                    raise RegistryCorruptError(f"命名空间 '{name}' 中 '{rel_path}' 的摘要不是字符串")
            namespaces[name] = dict(entries)

        return cls(namespaces, extras)

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化的字典"""
        with self._lock:
            data: Dict[str, Any] = dict(self._extras)
            for name, entries in self._namespaces.items():
                data[name] = dict(entries)
            return data

    def save(self, path: Union[str, Path]) -> None:
        """持久化注册表

        先写入同目录临时文件再替换，写入失败时不会留下截断的旧文件。

        Raises:
            RegistryWriteError: 写入失败
        """
        path = Path(path)
        data = self.to_dict()
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
                f.write("\n")
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise RegistryWriteError(f"注册表写入失败: {e}", path) from e

        debug(f"已保存注册表: {path}", stage=LogStage.REGISTRY)

    def namespaces(self) -> Iterator[str]:
        return iter(list(self._namespaces))

    def has_namespace(self, namespace: str) -> bool:
        return namespace in self._namespaces

    def entries(self, namespace: str) -> Dict[str, str]:
        """命名空间内容的副本"""
        with self._lock:
            return dict(self._namespaces.get(namespace, {}))

    def get(self, namespace: str, relative_path: str) -> Optional[str]:
        with self._lock:
            return self._namespaces.get(namespace, {}).get(relative_path)

    def is_unchanged(self, namespace: str, relative_path: str, checksum: str, invalidate: bool = False) -> bool:
        """判断文件是否未变化（不修改注册表）"""
        if invalidate:
            return False
        return self.get(namespace, relative_path) == checksum

    def record(self, namespace: str, relative_path: str, checksum: str) -> None:
        """记录摘要，必要时创建命名空间"""
        with self._lock:
            self._namespaces.setdefault(namespace, {})[relative_path] = checksum

    def check_and_update(self, namespace: str, relative_path: str, checksum: str, invalidate: bool = False) -> bool:
        """检查并更新摘要

        Returns:
            bool: 未变化返回 True 且不修改记录；否则写入新摘要并返回 False
        """
        with self._lock:
            if self.is_unchanged(namespace, relative_path, checksum, invalidate):
                return True
            self.record(namespace, relative_path, checksum)
            return False

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._namespaces.values())

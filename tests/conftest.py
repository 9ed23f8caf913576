"""
测试公共夹具

提供构造项目目录布局与 jar 归档的辅助工具。
"""

import json
import struct
import zipfile
from pathlib import Path
from typing import Dict, Optional, Union

import pytest

from plugpack.build.orchestrator import BuildOrchestrator
from plugpack.config.schema import PackagerConfig

Content = Union[str, bytes]


def make_archive(path: Path, entries: Dict[str, Content]) -> Path:
    """创建 zip 归档"""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, 'w', zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def read_archive(path: Path) -> Dict[str, bytes]:
    """读取归档中所有文件条目"""
    with zipfile.ZipFile(path, 'r') as zf:
        return {info.filename: zf.read(info) for info in zf.infolist() if not info.is_dir()}


def archive_names(path: Path) -> set:
    with zipfile.ZipFile(path, 'r') as zf:
        return set(zf.namelist())


def corrupt_entry(path: Path, name: str) -> None:
    """翻转条目压缩数据中的若干字节"""
    with zipfile.ZipFile(path, 'r') as zf:
        info = zf.getinfo(name)
    data = bytearray(path.read_bytes())
    offset = info.header_offset
    name_len, extra_len = struct.unpack('<HH', data[offset + 26:offset + 30])
    start = offset + 30 + name_len + extra_len
    for i in range(start + 2, min(start + 12, start + info.compress_size)):
        data[i] ^= 0xFF
    path.write_bytes(bytes(data))


# 压缩后仍有足够长度的数据，便于破坏
BULKY = b"".join(str(i).encode() for i in range(5000))


class Workspace:
    """临时项目根目录"""

    def __init__(self, root: Path):
        self.root = root
        for name in ("bin", "modules", "configs", "resources"):
            (root / name).mkdir(parents=True, exist_ok=True)

    def _write(self, path: Path, content: Content) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            path.write_text(content, encoding='utf-8')
        else:
            path.write_bytes(content)
        return path

    def add_base(self, identifier: str, entries: Optional[Dict[str, Content]] = None) -> Path:
        entries = entries if entries is not None else {"org/base/Main.class": b"base-main"}
        return make_archive(self.root / "bin" / f"Backbone-Core-{identifier}.jar", entries)

    def add_module(self, name: str, entries: Dict[str, Content]) -> Path:
        return make_archive(self.root / "modules" / name, entries)

    def add_config(self, name: str, content: Content) -> Path:
        return self._write(self.root / "configs" / name, content)

    def add_resource(self, relative: str, content: Content) -> Path:
        return self._write(self.root / "resources" / relative, content)

    def add_python_module(self, relative: str, content: Content) -> Path:
        return self._write(self.root / "python_modules" / relative, content)

    def add_python_resource(self, relative: str, content: Content) -> Path:
        return self._write(self.root / "python_resources" / relative, content)

    def packaged(self, identifier: str) -> Path:
        return self.root / "bin" / f"Backbone-Core-{identifier}-Packaged.jar"

    def registry(self) -> dict:
        path = self.root / "bin" / "last_modified.json"
        return json.loads(path.read_text(encoding='utf-8'))

    def orchestrator(self, config: Optional[PackagerConfig] = None) -> BuildOrchestrator:
        return BuildOrchestrator(config or PackagerConfig(), self.root)


@pytest.fixture
def workspace(tmp_path):
    """标准目录布局的项目根目录"""
    return Workspace(tmp_path / "project")

"""
streammates.db.storage
~~~~~~~~~~~~~~~~~~~~~~

键值存储介质 —— 模拟浏览器 ``localStorage`` 的共享持久化槽位。

- ``MemoryStorage``：进程内字典，同一进程的所有上下文共享。
- ``FileStorage``：每个键对应目录下的一个 ``<key>.json`` 文件，
  写入时先写临时文件再原子替换，读方不会看到写了一半的内容。

介质本身不可用（目录无权限、磁盘错误等）时抛出 ``StorageUnavailableError``；
“键不存在”不是错误，返回 None。
"""
from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from streammates.core.config import Settings
from streammates.core.logging import get_logger

logger = get_logger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageUnavailableError(RuntimeError):
    """存储介质无法读写。"""


class KeyValueStorage(Protocol):
    """与 ``localStorage`` 对齐的最小接口。"""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """进程内存介质。进程退出即丢失。"""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileStorage:
    """本地目录介质，多个进程指向同一目录即可共享数据。

    Attributes:
        directory: 存储目录，不存在时自动创建。
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"无法创建存储目录 {self.directory}: {e}") from e

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"非法的存储键名: {key!r}")
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        """读取槽位内容。非 UTF-8 字节按替换字符解码，交给上层按损坏内容处理。"""
        path = self._path(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailableError(f"读取 {path} 失败: {e}") from e
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("存储文件不是合法的 UTF-8 | path=%s", path)
            return raw.decode("utf-8", errors="replace")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=f".{key}.", suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                # 替换失败时不留下临时文件
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageUnavailableError(f"写入 {path} 失败: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"删除 {path} 失败: {e}") from e


def create_storage(settings: Settings) -> KeyValueStorage:
    """按配置创建存储介质。"""
    if settings.STORAGE_BACKEND == "memory":
        logger.info("存储介质: memory")
        return MemoryStorage()
    logger.info("存储介质: file | dir=%s", settings.storage_path)
    return FileStorage(settings.storage_path)

"""
streammates.db
~~~~~~~~~~~~~~

文档存储入口。

``create_database()`` 按配置选择存储介质并返回 ``MockMongoDB`` 实例，
实例由应用根（``LocalBackend``）持有，不使用模块级全局变量。
"""
from __future__ import annotations

from streammates.core.config import Settings
from streammates.core.logging import get_logger
from streammates.db.mock_mongo import MockCollection, MockMongoDB
from streammates.db.storage import (
    FileStorage,
    KeyValueStorage,
    MemoryStorage,
    StorageUnavailableError,
    create_storage,
)

logger = get_logger(__name__)

__all__ = [
    "FileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "MockCollection",
    "MockMongoDB",
    "StorageUnavailableError",
    "create_database",
    "create_storage",
]


def create_database(settings: Settings, storage: KeyValueStorage | None = None) -> MockMongoDB:
    """创建文档数据库。

    Args:
        settings: 全局配置。
        storage: 可选的现成存储介质（测试或多个后端共享同一介质时传入）。

    Returns:
        ``MockMongoDB`` 实例。
    """
    db = MockMongoDB(storage or create_storage(settings), storage_key=settings.STORAGE_KEY)
    logger.info("文档数据库已就绪 | key=%s", settings.STORAGE_KEY)
    return db

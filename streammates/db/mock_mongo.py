"""
streammates.db.mock_mongo
~~~~~~~~~~~~~~~~~~~~~~~~~

模拟 MongoDB 驱动 —— 用一个共享键值槽位里的 JSON 快照充当数据库。

真实部署时这里会是 Atlas 集群 + motor 驱动；本地多上下文联调时，
所有上下文读写同一个存储槽位即可共享房间数据。

约束:
  - 每次读取都完整反序列化整个快照，每次写入都完整覆盖整个快照；
  - 集合保持插入顺序，不做唯一性约束，不生成 ``_id``；
  - 跨上下文没有锁，并发写入最后写入者胜出。
"""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypedDict, TypeVar

from streammates.core.logging import get_logger
from streammates.db.storage import KeyValueStorage

logger = get_logger(__name__)

STORAGE_KEY = "streammates_db_v1"

# 快照默认包含的集合
DEFAULT_COLLECTIONS: tuple[str, ...] = ("rooms",)

T = TypeVar("T", bound=Mapping[str, Any])

Query = Mapping[str, Any] | Callable[[Any], bool]

UpdateOps = TypedDict(
    "UpdateOps",
    {
        "$set": Mapping[str, Any],
        "$push": Mapping[str, Any],
        "$pull": Mapping[str, Any],
    },
    total=False,
)

_SUPPORTED_OPERATORS = frozenset({"$set", "$push", "$pull"})


def _empty_snapshot() -> dict[str, list[Any]]:
    return {name: [] for name in DEFAULT_COLLECTIONS}


def strict_equals(left: Any, right: Any) -> bool:
    """严格相等：类型不同即不等（``True`` 不等于 ``1``），int 与 float 按数值比较。"""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def matches(document: Mapping[str, Any], query: Query) -> bool:
    """判断文档是否满足查询。

    字典查询是对其中每个键的合取（严格相等），未出现的键不做约束，
    因此空查询匹配任意文档。也可以直接传入调用方自己的判定函数。
    快照里混入的非对象元素不匹配任何字典查询。
    """
    if callable(query):
        return bool(query(document))
    if not isinstance(document, Mapping):
        return False
    for key, expected in query.items():
        if key not in document or not strict_equals(document[key], expected):
            return False
    return True


def apply_update(document: dict[str, Any], update: UpdateOps) -> None:
    """按 ``$set`` → ``$push`` → ``$pull`` 的固定顺序原地修改文档。"""
    unknown = set(update) - _SUPPORTED_OPERATORS
    if unknown:
        logger.debug("忽略不支持的更新操作符: %s", sorted(unknown))

    # $set: 浅合并，覆盖已有字段
    if "$set" in update:
        document.update(update["$set"])

    # $push: 只对数组字段追加，非数组字段忽略
    if "$push" in update:
        for key, value in update["$push"].items():
            current = document.get(key)
            if isinstance(current, list):
                current.append(value)

    # $pull: 只支持按元素的 id 删除
    if "$pull" in update:
        for key, condition in update["$pull"].items():
            current = document.get(key)
            if not isinstance(current, list):
                continue
            if not isinstance(condition, Mapping) or "id" not in condition:
                continue
            target_id = condition["id"]
            document[key] = [
                element for element in current
                if not (
                    isinstance(element, Mapping)
                    and "id" in element
                    and strict_equals(element["id"], target_id)
                )
            ]


class MockCollection(Generic[T]):
    """一个命名集合。所有方法都是协程，与真实异步驱动的调用方式保持一致。

    Attributes:
        name: 集合名称（快照中的顶层键）。
    """

    def __init__(self, db: MockMongoDB, name: str) -> None:
        self._db = db
        self.name = name

    def _get_data(self) -> list[T]:
        items = self._db.load_data().get(self.name)
        return items if isinstance(items, list) else []

    def _save_data(self, items: list[T]) -> None:
        full_db = self._db.load_data()
        full_db[self.name] = items
        self._db.persist_data(full_db)

    async def find_one(self, query: Query) -> T | None:
        """按插入顺序返回第一个匹配的文档，没有则返回 None。"""
        for item in self._get_data():
            if matches(item, query):
                return item
        return None

    async def find(self, query: Query) -> list[T]:
        """返回全部匹配的文档（插入顺序）。"""
        return [item for item in self._get_data() if matches(item, query)]

    async def count_documents(self, query: Query) -> int:
        return len(await self.find(query))

    async def insert_one(self, doc: T) -> T:
        """追加文档并持久化，原样返回传入的文档。"""
        items = self._get_data()
        items.append(doc)
        self._save_data(items)
        return doc

    async def update_one(self, query: Query, update: UpdateOps) -> bool:
        """修改第一个匹配的文档。

        Args:
            query: 定位文档的查询，规则与 ``find_one`` 相同。
            update: 更新操作符，支持 ``$set`` / ``$push`` / ``$pull``。

        Returns:
            找到并修改了文档返回 True；没有匹配时不写入，返回 False。
        """
        items = self._get_data()
        for index, item in enumerate(items):
            # 非对象元素无法应用更新操作符
            if isinstance(item, dict) and matches(item, query):
                break
        else:
            return False

        apply_update(item, update)
        items[index] = item
        self._save_data(items)
        return True

    async def delete_one(self, query: Query) -> bool:
        """删除第一个匹配的文档，没有匹配时返回 False。"""
        items = self._get_data()
        for index, item in enumerate(items):
            if matches(item, query):
                del items[index]
                self._save_data(items)
                return True
        return False


class MockMongoDB:
    """数据库入口，负责快照的整体读取与整体写入。

    Attributes:
        storage: 底层键值存储介质。
        storage_key: 快照所在的槽位键名。
    """

    def __init__(self, storage: KeyValueStorage, storage_key: str = STORAGE_KEY) -> None:
        self.storage = storage
        self.storage_key = storage_key
        # 槽位为空时初始化一个空库
        if self.storage.get_item(self.storage_key) is None:
            self.persist_data(_empty_snapshot())
            logger.info("已初始化空数据库 | key=%s", self.storage_key)

    def load_data(self) -> dict[str, Any]:
        """读取完整快照。槽位缺失或内容损坏时按空库处理，不抛异常。"""
        raw = self.storage.get_item(self.storage_key)
        if raw is None:
            return _empty_snapshot()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("数据库快照无法解析，按空库处理 | key=%s", self.storage_key)
            return _empty_snapshot()
        if not isinstance(data, dict):
            logger.warning("数据库快照结构异常，按空库处理 | key=%s", self.storage_key)
            return _empty_snapshot()
        return data

    def persist_data(self, data: Mapping[str, Any]) -> None:
        """序列化并覆盖整个快照。非 ASCII 字符（含孤立代理项）一律转义为 ``\\uXXXX``。"""
        self.storage.set_item(self.storage_key, json.dumps(data))

    def collection(self, name: str = "rooms") -> MockCollection[dict[str, Any]]:
        return MockCollection(self, name)

"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 测试环境使用内存存储和更短的延迟/超时，
单元测试无需磁盘和真实网络即可快速运行。
"""
from __future__ import annotations

import os
from collections.abc import Callable

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("JOIN_BROADCAST_DELAY", "0.05")
os.environ.setdefault("ROOM_CHECK_TIMEOUT", "0.3")

from streammates.db.mock_mongo import MockMongoDB  # noqa: E402
from streammates.db.storage import MemoryStorage  # noqa: E402
from streammates.services.broadcast import BroadcastHub  # noqa: E402
from streammates.services.signaling import SignalingBus  # noqa: E402

CHANNEL = "test_channel"
JOIN_DELAY: float = 0.01
CHECK_TIMEOUT: float = 0.2


@pytest.fixture()
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture()
def make_bus(hub: BroadcastHub) -> Callable[[], SignalingBus]:
    """返回一个工厂，每次调用创建一个新的上下文（同名频道上的一条总线）。"""

    def _make() -> SignalingBus:
        return SignalingBus(
            hub.open(CHANNEL), join_delay=JOIN_DELAY, check_timeout=CHECK_TIMEOUT,
        )

    return _make


@pytest.fixture()
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def memory_db(memory_storage: MemoryStorage) -> MockMongoDB:
    return MockMongoDB(memory_storage)

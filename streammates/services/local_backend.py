"""
streammates.services.local_backend
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

本地后端 —— 应用根持有的唯一实例，管理广播中心、文档数据库和所有信令总线的生命周期。

不再使用模块级单例：在 FastAPI lifespan 中创建并挂载于 ``app.state``，
测试中直接构造即可。
"""
from __future__ import annotations

from streammates.core.config import Settings
from streammates.core.logging import get_logger
from streammates.db import create_database
from streammates.db.mock_mongo import MockCollection, MockMongoDB
from streammates.db.storage import KeyValueStorage
from streammates.services.broadcast import BroadcastHub
from streammates.services.signaling import SignalingBus

logger = get_logger(__name__)


class LocalBackend:
    """信令 + 文档存储的本地替身。

    - ``startup()`` / ``shutdown()`` → 生命周期钩子
    - ``open_bus()``                 → 为一个新上下文创建信令总线
    - ``check_room(room_id)``        → 通过专用探测总线查询房间是否有人在线
    - ``rooms``                      → ``rooms`` 集合

    Attributes:
        settings: 全局配置。
        hub: 广播中心，同一后端打开的所有频道都在这里。
        db: 文档数据库（``startup()`` 之后可用）。
    """

    def __init__(self, settings: Settings, storage: KeyValueStorage | None = None) -> None:
        self.settings = settings
        self.hub = BroadcastHub()
        self.db: MockMongoDB | None = None
        self._storage = storage
        self._buses: set[SignalingBus] = set()
        self._probe: SignalingBus | None = None

    def startup(self) -> None:
        """初始化数据库和探测总线。重复调用无副作用。"""
        if self.db is not None:
            return
        self.db = create_database(self.settings, storage=self._storage)
        self._probe = self.open_bus()
        logger.info("本地后端已启动 | channel=%s", self.settings.CHANNEL_NAME)

    def shutdown(self) -> None:
        """关闭所有信令总线（已连接的会广播 ``user:left``）。"""
        for bus in list(self._buses):
            self.close_bus(bus)
        self._probe = None
        self.db = None
        logger.info("本地后端已关闭")

    # ── 信令 ──────────────────────────────────────────────────────────

    def open_bus(self) -> SignalingBus:
        """为一个新上下文（标签页 / WebSocket 连接）创建信令总线。"""
        bus = SignalingBus(
            self.hub.open(self.settings.CHANNEL_NAME),
            join_delay=self.settings.JOIN_BROADCAST_DELAY,
            check_timeout=self.settings.ROOM_CHECK_TIMEOUT,
        )
        self._buses.add(bus)
        return bus

    def close_bus(self, bus: SignalingBus) -> None:
        if bus in self._buses:
            self._buses.discard(bus)
            bus.close()

    @property
    def bus_count(self) -> int:
        """当前打开的总线数（含探测总线）。"""
        return len(self._buses)

    async def check_room(self, room_id: str) -> bool:
        """房间里是否有上下文在线。探测总线本身从不加入任何房间。"""
        if self._probe is None:
            raise RuntimeError("本地后端尚未启动，请先调用 startup()")
        exists = await self._probe.check_room(room_id)
        logger.debug("房间探测结果 | room=%s | exists=%s", room_id, exists)
        return exists

    # ── 文档存储 ──────────────────────────────────────────────────────

    @property
    def rooms(self) -> MockCollection[dict]:
        if self.db is None:
            raise RuntimeError("本地后端尚未启动，请先调用 startup()")
        return self.db.collection("rooms")

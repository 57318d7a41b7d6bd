"""
streammates.services.signaling
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间级信令总线 —— 在同源的多个上下文之间转发 WebRTC 信令事件。

每个上下文（浏览器标签页 / WebSocket 连接）持有一个 ``SignalingBus``，
底层共用一个同名 ``BroadcastChannel``:

- ``connect()`` / ``disconnect()`` 维护本上下文的会话（user_id + room_id）
- ``emit()`` 把事件广播给同房间的其他上下文，本地监听器不会收到回声
- ``on()`` / ``off()`` 管理本地事件监听表
- ``check_room()`` 通过 ``system:ping`` / ``system:pong`` 探测房间是否有人在线，
  不需要中心化的房间目录
"""
from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from streammates.core.logging import get_logger
from streammates.schemas.envelope import (
    SYSTEM_PING,
    SYSTEM_PONG,
    USER_JOINED,
    USER_LEFT,
    Envelope,
)
from streammates.services.broadcast import BroadcastChannel

logger = get_logger(__name__)

Listener = Callable[[Any], Any]

# 默认值与 Settings 保持一致
DEFAULT_JOIN_DELAY: float = 0.3
DEFAULT_CHECK_TIMEOUT: float = 1.5


def _parse_envelope(payload: Any) -> Envelope | None:
    """把频道上的原始消息解析为 ``Envelope``，格式不符时返回 None。"""
    try:
        return Envelope.model_validate(payload)
    except ValidationError:
        logger.debug("丢弃格式不符的频道消息: %r", payload)
        return None


class SignalingBus:
    """单个上下文的信令总线。

    Attributes:
        user_id: 当前会话的用户 ID，未连接时为空字符串。
        room_id: 当前所在房间，未连接时为 None。
        join_delay: connect 之后广播 ``user:joined`` 的延迟秒数。
        check_timeout: ``check_room()`` 的最长等待秒数。
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        join_delay: float = DEFAULT_JOIN_DELAY,
        check_timeout: float = DEFAULT_CHECK_TIMEOUT,
    ) -> None:
        self._channel = channel
        self.join_delay = join_delay
        self.check_timeout = check_timeout
        self.user_id: str = ""
        self.room_id: str | None = None
        self._listeners: dict[str, list[Listener]] = {}
        self._pending_join: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._channel.add_listener(self._on_channel_message)

    # ── 会话 ──────────────────────────────────────────────────────────

    def connect(self, user_id: str, room_id: str) -> None:
        """加入房间，并在 ``join_delay`` 秒后广播 ``user:joined``。

        延迟是为了让其他上下文先挂好监听器，同时模拟真实网络的连接耗时。
        需要在事件循环内调用，否则抛出 ``RuntimeError`` 且会话保持不变。
        """
        loop = asyncio.get_running_loop()
        self._cancel_pending_join()
        self.user_id = user_id
        self.room_id = room_id
        logger.info("信令已连接 | user=%s | room=%s", user_id, room_id)

        self._pending_join = loop.call_later(
            self.join_delay, self._announce_join, user_id,
        )

    def disconnect(self) -> None:
        """离开房间：广播 ``user:left``，清空会话和全部监听器。可重复调用。

        广播需要运行中的事件循环；广播失败时异常照常抛出，但会话和监听器仍会被清空。
        """
        self._cancel_pending_join()
        try:
            if self.room_id:
                self.emit(USER_LEFT, {"userId": self.user_id})
                logger.info("信令已断开 | user=%s | room=%s", self.user_id, self.room_id)
        finally:
            self.room_id = None
            self.user_id = ""
            self._listeners.clear()

    @property
    def connected(self) -> bool:
        return self.room_id is not None

    # ── 事件收发 ──────────────────────────────────────────────────────

    def emit(self, event: str, data: Any = None) -> None:
        """向当前房间的其他上下文广播事件。未加入房间时什么也不做。"""
        if not self.room_id:
            return
        envelope = Envelope(room_id=self.room_id, event=event, data=data)
        self._channel.post_message(envelope.to_wire())

    def on(self, event: str, callback: Listener) -> None:
        """注册事件监听器。同一事件的多个监听器按注册顺序触发。

        回调可以是普通函数，也可以是协程函数（协程会被调度为后台任务）。
        """
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Listener) -> None:
        """按引用移除事件监听器。"""
        callbacks = self._listeners.get(event)
        if callbacks is not None:
            self._listeners[event] = [cb for cb in callbacks if cb != callback]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    # ── 房间探测 ──────────────────────────────────────────────────────

    async def check_room(self, room_id: str) -> bool:
        """探测是否有其他上下文正在 ``room_id`` 房间内。

        发出 ``system:ping`` 后等待同房间的 ``system:pong``，
        超过 ``check_timeout`` 秒仍无应答则返回 False。超时不是错误。

        Args:
            room_id: 要探测的房间 ID。

        Returns:
            有上下文应答时返回 True，否则 False。
        """
        loop = asyncio.get_running_loop()
        answered: asyncio.Future[bool] = loop.create_future()

        def on_pong(payload: Any) -> None:
            envelope = _parse_envelope(payload)
            if envelope is None or answered.done():
                return
            if envelope.event == SYSTEM_PONG and envelope.room_id == room_id:
                answered.set_result(True)

        # 临时处理器直接挂在频道上，不进入事件监听表
        self._channel.add_listener(on_pong)
        try:
            self._channel.post_message(
                Envelope(room_id=room_id, event=SYSTEM_PING, data={}).to_wire(),
            )
            return await asyncio.wait_for(answered, timeout=self.check_timeout)
        except asyncio.TimeoutError:
            logger.debug("房间探测超时 | room=%s", room_id)
            return False
        finally:
            self._channel.remove_listener(on_pong)

    # ── 生命周期 ──────────────────────────────────────────────────────

    def close(self) -> None:
        """断开会话并关闭底层频道。"""
        try:
            self.disconnect()
        finally:
            self._channel.remove_listener(self._on_channel_message)
            self._channel.close()
            for task in list(self._tasks):
                task.cancel()

    # ── 内部 ──────────────────────────────────────────────────────────

    def _announce_join(self, user_id: str) -> None:
        self._pending_join = None
        self.emit(USER_JOINED, {"userId": user_id})

    def _cancel_pending_join(self) -> None:
        if self._pending_join is not None:
            self._pending_join.cancel()
            self._pending_join = None

    def _on_channel_message(self, payload: Any) -> None:
        envelope = _parse_envelope(payload)
        if envelope is None:
            return

        if envelope.event == SYSTEM_PING:
            # 只有当前就在被探测房间里的上下文才应答
            if self.room_id is not None and envelope.room_id == self.room_id:
                self._channel.post_message(
                    Envelope(
                        room_id=envelope.room_id,
                        event=SYSTEM_PONG,
                        data={"responderId": self.user_id},
                    ).to_wire(),
                )
            return

        if self.room_id and envelope.room_id == self.room_id:
            self._trigger(envelope.event, envelope.data)

    def _trigger(self, event: str, data: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                result = callback(data)
            except Exception:
                logger.exception("监听器执行异常 | event=%s", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("异步监听器执行异常", exc_info=task.exception())

"""
streammates.services.broadcast
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

进程内的 BroadcastChannel —— 同名频道之间的一对多消息投递。

语义与浏览器 ``BroadcastChannel`` 对齐:

- ``post_message()`` 立即返回，消息在事件循环的下一轮异步投递；
- 只投递给同名的 *其他* 频道，发送方自己收不到；
- 每条消息深拷贝一份再投递（对应 structured clone），接收方修改不会互相影响；
- 同一发送方的消息按发送顺序到达（``call_soon`` 先进先出）。
"""
from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from typing import Any

from streammates.core.logging import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[Any], None]


class BroadcastHub:
    """频道注册中心，相当于浏览器里的“同源”。"""

    def __init__(self) -> None:
        self._channels: dict[str, list[BroadcastChannel]] = {}

    def open(self, name: str) -> BroadcastChannel:
        """打开一个新频道并加入同名订阅组。"""
        channel = BroadcastChannel(name, self)
        self._channels.setdefault(name, []).append(channel)
        logger.debug("频道已打开 | name=%s | 订阅数=%d", name, len(self._channels[name]))
        return channel

    def subscriber_count(self, name: str) -> int:
        """当前同名频道的订阅数。"""
        return len(self._channels.get(name, []))

    def _detach(self, channel: BroadcastChannel) -> None:
        members = self._channels.get(channel.name)
        if members and channel in members:
            members.remove(channel)
            if not members:
                del self._channels[channel.name]

    def _deliver(self, sender: BroadcastChannel, payload: Any) -> None:
        loop = asyncio.get_running_loop()
        for target in list(self._channels.get(sender.name, [])):
            if target is sender:
                continue
            loop.call_soon(target._dispatch, copy.deepcopy(payload))


class BroadcastChannel:
    """一个上下文持有的频道句柄。

    原始消息处理器通过 ``add_listener`` / ``remove_listener`` 独立增删，
    与上层总线的事件监听表无关。
    """

    def __init__(self, name: str, hub: BroadcastHub) -> None:
        self.name = name
        self._hub = hub
        self._handlers: list[MessageHandler] = []
        self.closed = False

    def post_message(self, payload: Any) -> None:
        """向同名的其他频道广播一条消息（发后即忘）。"""
        if self.closed:
            raise RuntimeError(f"频道 {self.name} 已关闭")
        self._hub._deliver(self, payload)

    def add_listener(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def remove_listener(self, handler: MessageHandler) -> None:
        """按引用移除处理器，未注册时忽略。"""
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def listener_count(self) -> int:
        return len(self._handlers)

    def close(self) -> None:
        """退出订阅组并清空处理器。可重复调用。"""
        if self.closed:
            return
        self.closed = True
        self._handlers.clear()
        self._hub._detach(self)

    def _dispatch(self, payload: Any) -> None:
        # 投递排队期间频道可能已关闭
        if self.closed:
            return
        for handler in list(self._handlers):
            try:
                handler(payload)
            except Exception:
                logger.exception("频道消息处理器异常 | name=%s", self.name)

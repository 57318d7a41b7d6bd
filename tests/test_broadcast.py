"""
tests.test_broadcast
~~~~~~~~~~~~~~~~~~~~

进程内 BroadcastChannel 的投递语义测试。
"""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from streammates.services.broadcast import BroadcastHub


async def _flush(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestBroadcastChannel:
    """测试发送方排除、异步投递与深拷贝。"""

    @pytest.mark.asyncio
    async def test_delivers_to_others_not_sender(self, hub: BroadcastHub) -> None:
        a, b, c = hub.open("ch"), hub.open("ch"), hub.open("ch")
        got: dict[str, list[Any]] = {"a": [], "b": [], "c": []}
        a.add_listener(got["a"].append)
        b.add_listener(got["b"].append)
        c.add_listener(got["c"].append)

        a.post_message({"n": 1})
        await _flush()

        assert got["a"] == []
        assert got["b"] == [{"n": 1}]
        assert got["c"] == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_delivery_is_asynchronous(self, hub: BroadcastHub) -> None:
        """post_message 返回时接收方尚未收到消息。"""
        a, b = hub.open("ch"), hub.open("ch")
        got: list[Any] = []
        b.add_listener(got.append)

        a.post_message("x")
        assert got == []

        await _flush()
        assert got == ["x"]

    @pytest.mark.asyncio
    async def test_other_channel_names_are_isolated(self, hub: BroadcastHub) -> None:
        a, other = hub.open("ch"), hub.open("other")
        got: list[Any] = []
        other.add_listener(got.append)

        a.post_message("x")
        await _flush()

        assert got == []

    @pytest.mark.asyncio
    async def test_fifo_per_sender(self, hub: BroadcastHub) -> None:
        a, b = hub.open("ch"), hub.open("ch")
        got: list[int] = []
        b.add_listener(got.append)

        for i in range(10):
            a.post_message(i)
        await _flush()

        assert got == list(range(10))

    @pytest.mark.asyncio
    async def test_payload_is_copied(self, hub: BroadcastHub) -> None:
        """接收方拿到的是副本，发送方随后修改不会影响已发出的消息。"""
        a, b = hub.open("ch"), hub.open("ch")
        got: list[dict[str, Any]] = []
        b.add_listener(got.append)

        payload = {"items": [1]}
        a.post_message(payload)
        payload["items"].append(2)
        await _flush()

        assert got == [{"items": [1]}]

    @pytest.mark.asyncio
    async def test_closed_channel_receives_nothing(self, hub: BroadcastHub) -> None:
        a, b = hub.open("ch"), hub.open("ch")
        got: list[Any] = []
        b.add_listener(got.append)

        a.post_message("queued")
        b.close()
        await _flush()

        assert got == []
        assert hub.subscriber_count("ch") == 1

    def test_post_on_closed_channel_raises(self, hub: BroadcastHub) -> None:
        a = hub.open("ch")
        a.close()
        with pytest.raises(RuntimeError):
            a.post_message("x")

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, hub: BroadcastHub) -> None:
        a, b = hub.open("ch"), hub.open("ch")
        got: list[Any] = []

        def boom(_: Any) -> None:
            raise ValueError("boom")

        b.add_listener(boom)
        b.add_listener(got.append)

        a.post_message("x")
        await _flush()

        assert got == ["x"]

    def test_remove_listener_unknown_is_noop(self, hub: BroadcastHub) -> None:
        a = hub.open("ch")
        a.remove_listener(print)
        assert a.listener_count == 0

"""
streammates.api.signal_ws
~~~~~~~~~~~~~~~~~~~~~~~~~

信令 WebSocket 桥接 —— 让本机浏览器标签页通过 WebSocket 使用信令总线。

每条 WebSocket 连接就是一个“上下文”，独占一个 ``SignalingBus``；
连接断开时关闭总线（已在房间内的会广播 ``user:left``）。
帧格式见 ``streammates.schemas.signal_frames``。
"""
from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from streammates.api.deps import get_ws_backend
from streammates.core.logging import get_logger, request_id_ctx_var
from streammates.schemas.signal_frames import (
    ClientFrame,
    ack_frame,
    error_frame,
    event_frame,
    room_status_frame,
)
from streammates.services.local_backend import LocalBackend
from streammates.services.signaling import Listener, SignalingBus

logger = get_logger(__name__)

router: APIRouter = APIRouter()


class SignalBridge:
    """把一条 WebSocket 连接上的控制帧翻译为信令总线调用。

    总线事件和探测结果都先放进 ``outbound`` 队列，由发送协程串行写回客户端。

    Attributes:
        bus: 本连接独占的信令总线。
        outbound: 待发送给客户端的帧，``None`` 表示结束。
    """

    def __init__(self, bus: SignalingBus) -> None:
        self.bus = bus
        self.outbound: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._forwarders: dict[str, Listener] = {}
        self._checks: set[asyncio.Task[None]] = set()

    def handle_text(self, text: str) -> None:
        """解析并执行一帧客户端消息，格式错误时回写 error 帧。"""
        try:
            frame = ClientFrame.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug("无效的信令帧: %s", e)
            self.outbound.put_nowait(error_frame(f"无效的信令帧: {e}"))
            return
        self.handle_frame(frame)

    def handle_frame(self, frame: ClientFrame) -> None:
        if frame.type == "connect":
            self.bus.connect(frame.user_id, frame.room_id)
        elif frame.type == "disconnect":
            # disconnect 会清空总线的全部监听器
            self.bus.disconnect()
            self._forwarders.clear()
        elif frame.type == "emit":
            self.bus.emit(frame.event, frame.data)
        elif frame.type == "on":
            self._subscribe(frame.event)
        elif frame.type == "off":
            forwarder = self._forwarders.pop(frame.event, None)
            if forwarder is not None:
                self.bus.off(frame.event, forwarder)
        elif frame.type == "check_room":
            task = asyncio.create_task(self._check_room(frame.room_id))
            self._checks.add(task)
            task.add_done_callback(self._checks.discard)
        self.outbound.put_nowait(ack_frame(frame.type))

    def _subscribe(self, event: str) -> None:
        if event in self._forwarders:
            return

        def forward(data: Any) -> None:
            self.outbound.put_nowait(event_frame(event, data))

        self._forwarders[event] = forward
        self.bus.on(event, forward)

    async def _check_room(self, room_id: str) -> None:
        exists = await self.bus.check_room(room_id)
        self.outbound.put_nowait(room_status_frame(room_id, exists))

    def close(self) -> None:
        for task in list(self._checks):
            task.cancel()
        self.outbound.put_nowait(None)


@router.websocket("/ws/signal")
async def websocket_signal_endpoint(websocket: WebSocket) -> None:
    """信令 WebSocket 端点，一条连接对应一个上下文。"""
    ws_req_id = f"ws-{uuid.uuid4().hex[:8]}"
    token = request_id_ctx_var.set(ws_req_id)

    try:
        backend: LocalBackend = get_ws_backend(websocket)
        await websocket.accept()
        bus = backend.open_bus()
        bridge = SignalBridge(bus)
        logger.info("信令连接已建立 | 总线数: %d", backend.bus_count)

        async def receive_loop() -> None:
            try:
                while True:
                    text: str = await websocket.receive_text()
                    bridge.handle_text(text)
            except WebSocketDisconnect:
                pass  # 正常断开
            except Exception as e:
                logger.error("信令接收异常: %s", e, exc_info=True)
            finally:
                bridge.close()

        async def send_loop() -> None:
            try:
                while True:
                    frame = await bridge.outbound.get()
                    if frame is None:
                        break
                    await websocket.send_json(frame)
            except Exception as e:
                logger.error("信令发送异常: %s", e, exc_info=True)

        try:
            await asyncio.gather(receive_loop(), send_loop())
        finally:
            backend.close_bus(bus)
            logger.info("信令连接已关闭 | 总线数: %d", backend.bus_count)

    finally:
        request_id_ctx_var.reset(token)

"""
streammates.schemas.envelope
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

信令总线的传输单元 ``Envelope`` 及保留事件名。

线上格式固定为 ``{"roomId": ..., "event": ..., "data": ...}``，
与浏览器端 BroadcastChannel 消息保持一致。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── 保留事件名 ────────────────────────────────────────────────────────
SYSTEM_PING = "system:ping"
SYSTEM_PONG = "system:pong"
USER_JOINED = "user:joined"
USER_LEFT = "user:left"


class Envelope(BaseModel):
    """广播频道上的一条消息。

    Attributes:
        room_id: 目标房间 ID（线上字段名 ``roomId``）。
        event: 事件名。
        data: 事件负载，对总线不透明。
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    room_id: str = Field(..., alias="roomId", description="目标房间 ID")
    event: str = Field(..., min_length=1, description="事件名")
    data: Any = Field(default=None, description="事件负载")

    def to_wire(self) -> dict[str, Any]:
        """序列化为线上字典格式。"""
        return self.model_dump(by_alias=True)

"""
streammates.schemas.signal_frames
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

``/ws/signal`` WebSocket 桥接协议的帧格式。

客户端 → 服务端:
  - ``{"type": "connect", "userId": ..., "roomId": ...}``
  - ``{"type": "disconnect"}``
  - ``{"type": "emit", "event": ..., "data": ...}``
  - ``{"type": "on" | "off", "event": ...}``
  - ``{"type": "check_room", "roomId": ...}``

服务端 → 客户端:
  - ``{"type": "ack", "action": ...}``
  - ``{"type": "event", "event": ..., "data": ...}``
  - ``{"type": "room_status", "roomId": ..., "exists": ...}``
  - ``{"type": "error", "msg": ...}``
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ClientAction = Literal["connect", "disconnect", "emit", "on", "off", "check_room"]


class ClientFrame(BaseModel):
    """客户端发来的一帧控制消息。"""

    model_config = ConfigDict(populate_by_name=True)

    type: ClientAction = Field(..., description="动作类型")
    user_id: str | None = Field(default=None, alias="userId", description="connect 使用")
    room_id: str | None = Field(default=None, alias="roomId", description="connect / check_room 使用")
    event: str | None = Field(default=None, min_length=1, description="emit / on / off 使用")
    data: Any = Field(default=None, description="emit 的负载")

    @model_validator(mode="after")
    def _check_required(self) -> ClientFrame:
        if self.type == "connect" and (not self.user_id or not self.room_id):
            raise ValueError("connect 需要 userId 和 roomId")
        if self.type == "check_room" and not self.room_id:
            raise ValueError("check_room 需要 roomId")
        if self.type in ("emit", "on", "off") and not self.event:
            raise ValueError(f"{self.type} 需要 event")
        return self


def ack_frame(action: str) -> dict[str, Any]:
    return {"type": "ack", "action": action}


def event_frame(event: str, data: Any) -> dict[str, Any]:
    return {"type": "event", "event": event, "data": data}


def room_status_frame(room_id: str, exists: bool) -> dict[str, Any]:
    return {"type": "room_status", "roomId": room_id, "exists": exists}


def error_frame(msg: str) -> dict[str, Any]:
    return {"type": "error", "msg": msg}

"""
streammates.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

``/api/rooms`` 系列接口的应答外壳。

存储不可用（503）和未捕获异常（500）也走同一外壳；限流（429）由 slowapi 自带处理器应答，
WebSocket 信令帧不使用它。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """房间文档接口的应答外壳。

    ``data`` 随接口变化：``insert_one`` / ``find_one`` 是房间文档（未找到为 null），
    ``find`` 是文档列表，``update_one`` / ``delete_one`` 是 ``{"matched": bool}``，
    ``presence`` 是 ``{"room_id": str, "exists": bool}``。

    .. code-block:: json

        {"code": 200, "data": {"id": "r1", "users": []}, "msg": "success"}

    Attributes:
        code: 与 HTTP 状态码一致，200 表示成功。
        data: 接口数据，失败时为 null。
        msg: 状态说明，失败时是错误原因。
    """

    code: int = Field(default=200, description="状态码，与 HTTP 状态码一致")
    data: T = Field(..., description="接口数据")
    msg: str = Field(default="success", description="状态说明")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """失败应答，``code`` 同时用作 HTTP 状态码。"""
        return cls(code=code, data=data, msg=msg)

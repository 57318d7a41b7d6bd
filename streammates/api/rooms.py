"""
streammates.api.rooms
~~~~~~~~~~~~~~~~~~~~~

房间文档 REST 接口 —— ``rooms`` 集合的增查改删 + 房间在线探测。

路由前缀 ``/api/rooms``。

端点:
  - ``POST /rooms``                    → insert_one
  - ``POST /rooms/find_one``           → find_one（无匹配时 data 为 null）
  - ``POST /rooms/find``               → find
  - ``POST /rooms/update_one``         → update_one（无匹配时 matched=false）
  - ``POST /rooms/delete_one``         → delete_one
  - ``GET  /rooms/{room_id}/presence`` → ping/pong 探测房间是否有人在线

“找不到”不是错误，统一以 ``code=200`` 返回，由 data 表达结果。
"""
# slowapi 装饰器会包装端点，注解必须在运行时可解析，本模块不启用延迟注解
from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from streammates.api.deps import get_backend
from streammates.core.config import settings
from streammates.core.logging import get_logger
from streammates.core.rate_limit import limiter
from streammates.schemas.api_response import ApiResponse
from streammates.schemas.documents import (
    PresenceData,
    QueryRequest,
    UpdateRequest,
    WriteResultData,
)
from streammates.services.local_backend import LocalBackend

logger = get_logger(__name__)

router: APIRouter = APIRouter()


# ── 文档端点 ──────────────────────────────────────────────────────────

@router.post("/rooms", summary="插入房间文档")
@limiter.limit(settings.API_RATE_LIMIT)
async def insert_room(
    request: Request,
    doc: dict[str, Any] = Body(..., description="任意 JSON 对象"),
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[dict[str, Any]]:
    """追加一个房间文档，原样返回。"""
    inserted = await backend.rooms.insert_one(doc)
    logger.info("房间文档已插入 | keys=%s", sorted(inserted))
    return ApiResponse.ok(data=inserted)


@router.post("/rooms/find_one", summary="查询单个房间文档")
@limiter.limit(settings.API_RATE_LIMIT)
async def find_room(
    request: Request,
    body: QueryRequest,
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[dict[str, Any] | None]:
    """返回插入顺序上第一个匹配的文档，没有匹配时 data 为 null。"""
    return ApiResponse.ok(data=await backend.rooms.find_one(body.query))


@router.post("/rooms/find", summary="查询全部匹配的房间文档")
@limiter.limit(settings.API_RATE_LIMIT)
async def find_rooms(
    request: Request,
    body: QueryRequest,
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[list[dict[str, Any]]]:
    return ApiResponse.ok(data=await backend.rooms.find(body.query))


@router.post(
    "/rooms/update_one",
    summary="更新单个房间文档",
    response_model=ApiResponse[WriteResultData],
)
@limiter.limit(settings.API_RATE_LIMIT)
async def update_room(
    request: Request,
    body: UpdateRequest,
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[WriteResultData]:
    """对第一个匹配的文档依次应用 ``$set`` / ``$push`` / ``$pull``。

    Args:
        body: 查询条件 + 更新操作符。
    """
    matched = await backend.rooms.update_one(body.query, body.update.to_update_ops())
    return ApiResponse.ok(data=WriteResultData(matched=matched))


@router.post(
    "/rooms/delete_one",
    summary="删除单个房间文档",
    response_model=ApiResponse[WriteResultData],
)
@limiter.limit(settings.API_RATE_LIMIT)
async def delete_room(
    request: Request,
    body: QueryRequest,
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[WriteResultData]:
    matched = await backend.rooms.delete_one(body.query)
    return ApiResponse.ok(data=WriteResultData(matched=matched))


# ── 在线探测端点 ──────────────────────────────────────────────────────

@router.get(
    "/rooms/{room_id}/presence",
    summary="探测房间是否有人在线",
    response_model=ApiResponse[PresenceData],
)
@limiter.limit(settings.API_RATE_LIMIT)
async def room_presence(
    request: Request,
    room_id: str,
    backend: LocalBackend = Depends(get_backend),
) -> ApiResponse[PresenceData]:
    """向房间发送 ``system:ping``，在超时时间内收到 ``system:pong`` 即视为存在。

    Args:
        room_id: 房间唯一标识。
    """
    exists = await backend.check_room(room_id)
    return ApiResponse.ok(data=PresenceData(room_id=room_id, exists=exists))

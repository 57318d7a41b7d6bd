"""
streammates.schemas.documents
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

文档存储 REST 接口的请求/响应模型。

文档本身不做结构校验，统一按 ``dict[str, Any]`` 透传。
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """按字段相等匹配的查询。"""

    query: dict[str, Any] = Field(default_factory=dict, description="字段相等条件，空对象匹配全部")


class UpdateOperators(BaseModel):
    """更新操作符，线上字段名带 ``$`` 前缀。"""

    model_config = ConfigDict(populate_by_name=True)

    set_fields: dict[str, Any] | None = Field(default=None, alias="$set", description="浅合并的字段")
    push_values: dict[str, Any] | None = Field(default=None, alias="$push", description="追加到数组字段的值")
    pull_conditions: dict[str, Any] | None = Field(default=None, alias="$pull", description="按 id 从数组字段删除")

    def to_update_ops(self) -> dict[str, Any]:
        """转换为 ``MockCollection.update_one`` 接受的字典，省略未指定的操作符。"""
        # 不用 exclude_none：$set 里的 null 值需要原样保留
        operators = {
            "$set": self.set_fields,
            "$push": self.push_values,
            "$pull": self.pull_conditions,
        }
        return {name: value for name, value in operators.items() if value is not None}


class UpdateRequest(BaseModel):
    """update_one 请求体。"""

    query: dict[str, Any] = Field(default_factory=dict, description="定位文档的查询")
    update: UpdateOperators = Field(..., description="更新操作符")


class WriteResultData(BaseModel):
    """写操作结果。"""

    matched: bool = Field(..., description="是否找到并修改了文档")


class PresenceData(BaseModel):
    """房间在线探测结果。"""

    room_id: str = Field(..., description="房间 ID")
    exists: bool = Field(..., description="是否有上下文在房间内")

"""
streammates.core.rate_limit
~~~~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口的限流配置。

信令 WebSocket 不限流：WebRTC 协商时 ICE candidate 会成批到达。
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

# 基于客户端 IP 地址进行限流
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)

"""
streammates.core.config
~~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")

# 项目根目录（streammates 包的上一级）
PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="StreamMates Local Backend", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── 信令总线 ──────────────────────────────────────────────────────
    CHANNEL_NAME: str = Field(
        default="binge_pawry_global",
        description="同源所有上下文共享的广播频道名",
    )
    JOIN_BROADCAST_DELAY: float = Field(
        default=0.3,
        ge=0,
        description="connect 之后延迟多少秒广播 user:joined",
    )
    ROOM_CHECK_TIMEOUT: float = Field(
        default=1.5,
        gt=0,
        description="房间探测（ping/pong）的最长等待秒数",
    )

    # ── 文档存储 ──────────────────────────────────────────────────────
    STORAGE_BACKEND: Literal["memory", "file"] = Field(
        default="file",
        description="持久化介质：memory（进程内）/ file（本地目录）",
    )
    STORAGE_DIR: str = Field(
        default="data/storage",
        description="file 介质的存储目录（相对项目根目录）",
    )
    STORAGE_KEY: str = Field(
        default="streammates_db_v1",
        description="数据库快照所在的存储槽位键名",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    # 仅监听本机回环地址，不对外暴露
    HOST: str = Field(default="127.0.0.1", description="服务监听地址")
    PORT: int = Field(default=8000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")
    API_RATE_LIMIT: str = Field(
        default="60/second",
        description="REST 接口按客户端 IP 的限流规则（slowapi 语法）",
    )

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    # ── 环境差异化行为 ────────────────────────────────────────────────

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")

    @property
    def storage_path(self) -> Path:
        """file 介质的绝对目录。相对路径以项目根目录为基准。"""
        path = Path(self.STORAGE_DIR)
        return path if path.is_absolute() else PROJECT_ROOT / path


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()

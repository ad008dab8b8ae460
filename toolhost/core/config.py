"""
运行时配置

- Settings: 使用 pydantic-settings 管理环境变量配置
- ServerConfig: 调用方传入的服务器配置（已在外部解析校验）
"""

import json
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolhost.core.errors import ConfigurationError

DEFAULT_PORT = 3000
DEFAULT_TTL_EXTEND_SECONDS = 3600


class Settings(BaseSettings):
    """应用配置类"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # 基础配置
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # 服务配置（dedicated 模式）
    HOST: str = "0.0.0.0"
    PORT: Optional[int] = None

    # 请求上限与保活
    MCP_MAX_REQUESTS: Optional[int] = None
    MCP_TTL_EXTEND: Optional[int] = None

    # 运行时环境变量（JSON 对象字符串），构建期注入 + 运行期覆盖
    MCP_ENV_JSON: Optional[str] = None
    MCP_ENV: Optional[str] = None

    # CORS 配置
    CORS_ORIGINS: List[str] = ["*"]

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    def runtime_env(self) -> Dict[str, str]:
        """合并 MCP_ENV_JSON 与 MCP_ENV，后者优先"""
        merged: Dict[str, str] = {}
        merged.update(_parse_env_json(self.MCP_ENV_JSON))
        merged.update(_parse_env_json(self.MCP_ENV))
        return merged


def _parse_env_json(value: Optional[str]) -> Dict[str, str]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(k): str(v) for k, v in parsed.items() if v is not None}


class ComputeLayer(str, Enum):
    """部署形态"""

    DEDICATED = "dedicated"
    SERVERLESS = "serverless"


class ServerMetadata(BaseModel):
    """服务器元数据"""

    name: str
    version: str


class CorsOptions(BaseModel):
    """CORS 响应头配置"""

    model_config = ConfigDict(populate_by_name=True)

    allow_origin: str = Field("*", alias="allowOrigin")
    allow_methods: str = Field("GET, POST, OPTIONS", alias="allowMethods")
    allow_headers: str = Field("Content-Type", alias="allowHeaders")

    def to_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": self.allow_origin,
            "Access-Control-Allow-Methods": self.allow_methods,
            "Access-Control-Allow-Headers": self.allow_headers,
        }


class ServerConfig(BaseModel):
    """
    服务器配置

    由外部（CLI / 配置文件加载器）解析后传入，字段名兼容 camelCase
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    compute_layer: ComputeLayer = Field(..., alias="computeLayer")
    metadata: ServerMetadata
    default_port: Optional[int] = Field(None, alias="defaultPort")
    max_requests: Optional[int] = Field(None, alias="maxRequests", ge=1)
    ttl_extend_seconds: Optional[int] = Field(None, alias="ttlExtendSeconds", ge=0)
    cors: CorsOptions = Field(default_factory=CorsOptions)

    def resolve_port(self, settings: Settings, port: Optional[int] = None) -> int:
        """端口优先级：显式参数 > PORT 环境变量 > defaultPort > 3000"""
        if port is not None:
            return port
        if settings.PORT is not None:
            return settings.PORT
        return self.default_port if self.default_port is not None else DEFAULT_PORT

    def resolve_max_requests(self, settings: Settings) -> Optional[int]:
        if self.max_requests is not None:
            return self.max_requests
        return settings.MCP_MAX_REQUESTS

    def resolve_ttl_extend(self, settings: Settings) -> int:
        if self.ttl_extend_seconds is not None:
            return self.ttl_extend_seconds
        if settings.MCP_TTL_EXTEND is not None:
            return settings.MCP_TTL_EXTEND
        return DEFAULT_TTL_EXTEND_SECONDS


def load_server_config(data) -> ServerConfig:
    """从字典构建 ServerConfig，校验失败时抛出 ConfigurationError"""
    if isinstance(data, ServerConfig):
        return data
    try:
        return ServerConfig.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid server config: {e}") from e


@lru_cache
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()

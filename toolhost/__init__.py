"""
toolhost - 工具托管运行时

将一组独立实现的工具暴露为可远程调用的服务：
参数校验、工具执行、计费回传，支持 dedicated / serverless 两种部署形态
"""

from toolhost.core.config import ServerConfig
from toolhost.core.health import HealthSnapshot
from toolhost.main import create_server
from toolhost.runtime import DedicatedServer, ListenerHandle, ServerlessHandler
from toolhost.tools import (
    Billing,
    ExecutionContext,
    ExecutionMode,
    InvocationResult,
    ToolDefinition,
    ToolRegistry,
    ToolTrigger,
)
from toolhost.webhooks import WebhookDefinition, WebhookResponse

__version__ = "0.1.0"

__all__ = [
    "Billing",
    "DedicatedServer",
    "ExecutionContext",
    "ExecutionMode",
    "HealthSnapshot",
    "InvocationResult",
    "ListenerHandle",
    "ServerConfig",
    "ServerlessHandler",
    "ToolDefinition",
    "ToolRegistry",
    "ToolTrigger",
    "WebhookDefinition",
    "WebhookResponse",
    "create_server",
]

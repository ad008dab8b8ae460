"""
运行时适配器

- DedicatedServer: 常驻进程，监听端口
- ServerlessHandler: 无状态单次请求处理
"""

from toolhost.runtime.base import RuntimeComponents
from toolhost.runtime.dedicated import DedicatedServer, ListenerHandle
from toolhost.runtime.serverless import ServerlessHandler, ServerlessRequest

__all__ = [
    "DedicatedServer",
    "ListenerHandle",
    "RuntimeComponents",
    "ServerlessHandler",
    "ServerlessRequest",
]

"""
MCP (Model Context Protocol) 模块

调用面信封协议与分发器
"""

from toolhost.mcp.dispatcher import DispatchRequest, DispatchResponse, ProtocolDispatcher, Surface
from toolhost.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    MCPMethod,
)

__all__ = [
    "DispatchRequest",
    "DispatchResponse",
    "ProtocolDispatcher",
    "Surface",
    "MCPMethod",
    "PROTOCOL_VERSION",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
]

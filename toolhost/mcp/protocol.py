"""
MCP 协议定义

定义调用面（/mcp）的信封格式、错误码与响应构建
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic_core import to_jsonable_python

PROTOCOL_VERSION = "2.0"

# 保留错误码
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class MCPMethod(str, Enum):
    """调用面支持的方法"""

    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    WEBHOOKS_LIST = "webhooks/list"


class EnvelopeError(Exception):
    """信封无法解析或不合法"""

    def __init__(self, code: int, message: str, request_id: Any = None):
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(message)


def parse_json_body(body: Union[str, bytes, None]) -> Any:
    """
    解析请求体

    空 body 视为 {}；非法 JSON 抛出 EnvelopeError(PARSE_ERROR)
    """
    if body is None:
        return {}
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeError(PARSE_ERROR, "Parse error") from e
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise EnvelopeError(PARSE_ERROR, "Parse error") from e


@dataclass
class MCPRequest:
    """调用面请求信封"""

    id: Any
    method: str
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "MCPRequest":
        if not isinstance(payload, dict):
            raise EnvelopeError(INVALID_REQUEST, "Invalid Request")

        request_id = payload.get("id")
        # jsonrpc 作为 protocolVersion 的别名
        version = payload.get("protocolVersion", payload.get("jsonrpc"))
        if version != PROTOCOL_VERSION:
            raise EnvelopeError(INVALID_REQUEST, "Invalid Request", request_id)

        method = payload.get("method")
        if not isinstance(method, str):
            raise EnvelopeError(INVALID_REQUEST, "Invalid Request", request_id)

        params = payload.get("params") or {}
        if not isinstance(params, dict):
            raise EnvelopeError(INVALID_PARAMS, "Invalid params", request_id)

        return cls(id=request_id, method=method, params=params)


@dataclass
class CallArguments:
    """
    tools/call 参数

    支持两种格式：
    1. 直接参数: {...}
    2. 包装格式: {"inputs": {...}, "env": {...}, "context": {...}}

    context 携带调用来源（trigger / appInstallationId / workplace / field / fieldValues）
    """

    inputs: Any
    env: Optional[Dict[str, Optional[str]]] = None
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "CallArguments":
        if raw is None:
            return cls(inputs={})
        if isinstance(raw, dict) and ("inputs" in raw or "env" in raw or "context" in raw):
            env = raw.get("env")
            if env is not None and not isinstance(env, dict):
                env = None
            context = raw.get("context")
            if not isinstance(context, dict):
                context = None
            inputs = raw.get("inputs")
            return cls(inputs={} if inputs is None else inputs, env=env, context=context)
        return cls(inputs=raw)


def to_jsonable(value: Any) -> Any:
    """pydantic 模型、datetime 等转为可 JSON 序列化的值"""
    return to_jsonable_python(value, fallback=str)


def success_envelope(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "id": request_id,
        "result": result,
    }


def error_envelope(
    request_id: Any,
    code: int,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "id": request_id,
        "error": error,
    }


def bare_error(code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """非信封形式的错误体（estimate 面使用）"""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"error": error}


def text_content(payload: Any) -> List[Dict[str, str]]:
    return [{"type": "text", "text": json.dumps(payload, ensure_ascii=False)}]

"""
Serverless 适配器

单一请求处理入口：event -> {statusCode, headers, body}
调用之间不保留连接状态，每次都是一次独立的分发
"""

import asyncio
import base64
import binascii
import json
import time
from typing import Any, Dict, Mapping, Optional

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from toolhost.core.health import HealthSnapshot
from toolhost.mcp.dispatcher import DispatchRequest, Surface
from toolhost.mcp.protocol import METHOD_NOT_FOUND, error_envelope
from toolhost.middleware.metrics import observe_request, route_label
from toolhost.runtime.base import RuntimeComponents, log_startup

logger = structlog.get_logger(__name__)

RUNTIME = "serverless"

# (path, method) -> 逻辑入口
ROUTES: Dict[tuple, Surface] = {
    ("/mcp", "POST"): Surface.INVOKE,
    ("/health", "GET"): Surface.HEALTH,
    ("/estimate", "POST"): Surface.ESTIMATE,
}


class ServerlessRequest(BaseModel):
    """
    Serverless 请求

    兼容 API Gateway 事件字段名（httpMethod / queryStringParameters）
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    path: str
    method: str = Field("GET", validation_alias=AliasChoices("method", "httpMethod"))
    body: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    query: Dict[str, Optional[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("query", "queryStringParameters"),
    )
    request_context: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("requestContext", "request_context"),
    )
    is_base64_encoded: bool = Field(False, validation_alias=AliasChoices("isBase64Encoded", "is_base64_encoded"))

    @field_validator("headers", "query", "request_context", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("body", mode="before")
    @classmethod
    def _body_to_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        return json.dumps(value)

    @property
    def normalized_path(self) -> str:
        if len(self.path) > 1 and self.path.endswith("/"):
            return self.path.rstrip("/")
        return self.path

    def text_body(self) -> Optional[str]:
        if self.body is None or not self.is_base64_encoded:
            return self.body
        try:
            return base64.b64decode(self.body).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return self.body

    def header(self, name: str, default: str = "") -> str:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def url(self) -> str:
        protocol = self.header("x-forwarded-proto") or "https"
        host = self.header("host") or "localhost"
        query = "&".join(f"{k}={v}" for k, v in self.query.items() if v is not None)
        return f"{protocol}://{host}{self.path}" + (f"?{query}" if query else "")


class ServerlessHandler:
    """Serverless 运行时实例"""

    def __init__(self, components: RuntimeComponents):
        self._components = components
        self._headers = components.config.cors.to_headers()
        self._cold_start = True

    def get_health_status(self) -> HealthSnapshot:
        return self._components.health()

    def _response(self, status_code: int, body: str, headers: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        merged = dict(self._headers)
        if headers:
            merged.update(headers)
        return {"statusCode": status_code, "headers": merged, "body": body}

    def _json(self, status_code: int, payload: Any) -> Dict[str, Any]:
        return self._response(status_code, json.dumps(payload, ensure_ascii=False))

    async def handle(self, event: Any) -> Dict[str, Any]:
        """处理一次请求，永远返回响应而不是抛出异常"""
        if self._cold_start:
            log_startup(self._components)
            self._cold_start = False

        started = time.perf_counter()
        try:
            request = ServerlessRequest.model_validate(event)
        except ValidationError as e:
            logger.warning("serverless_event_malformed", error=str(e))
            response = self._json(400, {"error": "Malformed request event"})
            observe_request(RUNTIME, "other", "UNKNOWN", 400, time.perf_counter() - started)
            return response

        method = request.method.upper()
        response = await self._route(request, method)
        observe_request(
            RUNTIME,
            route_label(request.normalized_path),
            method,
            response["statusCode"],
            time.perf_counter() - started,
        )
        return response

    async def _route(self, request: ServerlessRequest, method: str) -> Dict[str, Any]:
        path = request.normalized_path

        if method == "OPTIONS":
            return self._json(200, {"message": "OK"})

        webhook_handle = self._components.webhook_router.match(path)
        if webhook_handle is not None and self._components.webhook_router.registry:
            result = await self._components.webhook_router.handle(
                webhook_handle,
                method,
                path,
                request.url(),
                request.headers,
                {k: v for k, v in request.query.items() if v is not None},
                request.text_body() or "",
            )
            return self._response(result.status, result.body, result.headers)

        surface = ROUTES.get((path, method))
        if surface is None:
            return self._json(404, error_envelope(None, METHOD_NOT_FOUND, "Not Found"))

        response = await self._components.dispatcher.dispatch(
            DispatchRequest(surface=surface, body=request.text_body()),
        )
        return self._response(response.status_code, response.to_json())

    def __call__(self, event: Any, context: Any = None) -> Dict[str, Any]:
        """同步入口（供 Lambda 等按需调用平台使用）"""
        return asyncio.run(self.handle(event))

"""
Webhook 路由

两种部署形态共用：解析请求体、校验方法、调用 handler、规范化响应
"""

import inspect
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog

from toolhost.webhooks.registry import (
    WebhookContext,
    WebhookRegistry,
    WebhookRequest,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

WEBHOOK_PREFIX = "/webhooks/"


@dataclass
class WebhookResult:
    """已序列化的 webhook 响应"""

    status: int
    headers: Dict[str, str]
    body: str


def _json_result(status: int, payload: Any) -> WebhookResult:
    return WebhookResult(
        status=status,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload, ensure_ascii=False),
    )


def _header(headers: Mapping[str, str], name: str) -> str:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return ""


def _parse_body(raw_body: str, content_type: str) -> Any:
    if "application/json" not in content_type:
        return raw_body
    if not raw_body:
        return {}
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError:
        return raw_body


def _normalize_response(response: Any) -> WebhookResponse:
    if isinstance(response, WebhookResponse):
        return response
    if isinstance(response, Mapping):
        return WebhookResponse(
            status=response.get("status") or 200,
            headers=dict(response.get("headers") or {}),
            body=response.get("body"),
        )
    return WebhookResponse(body=response)


class WebhookRouter:
    """Webhook 路由器"""

    def __init__(self, registry: WebhookRegistry, runtime_env: Optional[Mapping[str, str]] = None):
        self.registry = registry
        self._runtime_env = dict(runtime_env or {})

    @staticmethod
    def match(path: str) -> Optional[str]:
        """返回 /webhooks/{handle} 中的 handle"""
        if path.startswith(WEBHOOK_PREFIX):
            return path[len(WEBHOOK_PREFIX):]
        return None

    async def handle(
        self,
        handle: str,
        method: str,
        path: str,
        url: str,
        headers: Mapping[str, str],
        query: Mapping[str, str],
        raw_body: str,
    ) -> WebhookResult:
        log = logger.bind(webhook=handle, method=method)

        webhook = self.registry.get(handle)
        if webhook is None:
            return _json_result(404, {"error": f"Webhook handler '{handle}' not found"})

        if not webhook.allows(method):
            return _json_result(405, {"error": f"Method {method} not allowed"})

        request = WebhookRequest(
            method=method.upper(),
            path=path,
            url=url,
            headers=dict(headers),
            query=dict(query),
            body=_parse_body(raw_body, _header(headers, "content-type")),
            raw_body=raw_body.encode("utf-8") if raw_body else None,
        )
        env = dict(os.environ)
        env.update(self._runtime_env)
        context = WebhookContext(env=env)

        try:
            response = webhook.handler(request, context)
            if inspect.isawaitable(response):
                response = await response
        except Exception:
            log.exception("webhook_handler_error")
            return _json_result(500, {"error": "Webhook handler error"})

        normalized = _normalize_response(response)
        response_headers = dict(normalized.headers)
        if not _header(response_headers, "content-type"):
            response_headers["Content-Type"] = "application/json"

        if normalized.body is None:
            body = ""
        elif isinstance(normalized.body, str):
            body = normalized.body
        else:
            body = json.dumps(normalized.body, ensure_ascii=False, default=str)

        log.info("webhook_handled", status=normalized.status)
        return WebhookResult(status=normalized.status, headers=response_headers, body=body)

"""
Serverless 适配器测试
"""

import base64
import json

import pytest

from toolhost.main import create_server
from toolhost.runtime import ServerlessHandler
from toolhost.tools import ToolDefinition
from toolhost.webhooks import WebhookDefinition, WebhookResponse

from factories import (
    make_calculate_registry,
    make_custom_key_registry,
    make_echo_registry,
    mcp_body,
    serverless_event,
)


def _body(response):
    return json.loads(response["body"])


def test_create_server_returns_serverless_handler(echo_serverless):
    """测试 computeLayer=serverless 时返回 ServerlessHandler"""
    assert isinstance(echo_serverless, ServerlessHandler)


@pytest.mark.asyncio
async def test_mcp_call_returns_billing(echo_serverless):
    """测试 /mcp 调用返回计费"""
    body = mcp_body("tools/call", {"name": "echo", "arguments": {"inputs": {"value": "hi"}}})

    response = await echo_serverless.handle(serverless_event("/mcp", body=body))

    assert response["statusCode"] == 200
    result = _body(response)["result"]
    assert result["billing"] == {"credits": 2}
    assert result["structuredContent"]["message"] == "echo:hi"


@pytest.mark.asyncio
async def test_estimate_returns_billing_without_counting(echo_serverless):
    """测试 /estimate 不计入请求数"""
    body = json.dumps({"name": "echo", "inputs": {"value": "hi-est"}})

    response = await echo_serverless.handle(serverless_event("/estimate", body=body))

    assert response["statusCode"] == 200
    assert _body(response)["billing"] == {"credits": 6}
    assert echo_serverless.get_health_status().requests == 0


@pytest.mark.asyncio
async def test_estimate_mode_zero_credits(serverless_config, settings):
    """测试工具在预估模式下返回 0 credits"""
    handler = create_server(serverless_config, make_calculate_registry(), settings=settings)
    body = json.dumps({"name": "calculate", "inputs": {"a": 2, "b": 3}})

    response = await handler.handle(serverless_event("/estimate", body=body))

    assert response["statusCode"] == 200
    assert _body(response)["billing"] == {"credits": 0}


@pytest.mark.asyncio
async def test_lookup_uses_tool_name_not_key(serverless_config, settings):
    """测试按工具 name 调用，registry key 不可用"""
    handler = create_server(serverless_config, make_custom_key_registry(), settings=settings)

    by_key = await handler.handle(
        serverless_event("/mcp", body=mcp_body("tools/call", {"name": "custom-key", "arguments": {}}))
    )
    by_name = await handler.handle(
        serverless_event("/mcp", body=mcp_body("tools/call", {"name": "custom-tool-name", "arguments": {}}))
    )

    assert _body(by_key)["error"]["code"] == -32602
    assert _body(by_key)["error"]["message"] == 'Tool "custom-key" not found'
    assert "result" in _body(by_name)


@pytest.mark.asyncio
async def test_health_reflects_served_calls(echo_serverless):
    """测试 /health 计数"""
    for _ in range(3):
        await echo_serverless.handle(
            serverless_event("/mcp", body=mcp_body("tools/call", {"name": "echo", "arguments": {"value": "x"}}))
        )
    await echo_serverless.handle(serverless_event("/mcp", body=mcp_body("tools/list")))

    response = await echo_serverless.handle(serverless_event("/health", method="GET"))

    assert response["statusCode"] == 200
    health = _body(response)
    assert health["status"] == "running"
    assert health["runtime"] == "serverless"
    assert health["tools"] == ["echo"]
    assert health["requests"] == 3


@pytest.mark.asyncio
async def test_cors_headers_on_every_response(echo_serverless):
    """测试所有响应都带 CORS 头"""
    response = await echo_serverless.handle(serverless_event("/health", method="GET"))

    headers = response["headers"]
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert headers["Content-Type"] == "application/json"
    assert "POST" in headers["Access-Control-Allow-Methods"]


@pytest.mark.asyncio
async def test_options_preflight(echo_serverless):
    """测试 OPTIONS 预检请求"""
    response = await echo_serverless.handle(serverless_event("/mcp", method="OPTIONS"))

    assert response["statusCode"] == 200
    assert _body(response) == {"message": "OK"}
    assert echo_serverless.get_health_status().requests == 0


@pytest.mark.asyncio
async def test_unknown_route_not_found(echo_serverless):
    """测试未知路径返回 404"""
    response = await echo_serverless.handle(serverless_event("/nowhere", method="GET"))

    assert response["statusCode"] == 404
    body = _body(response)
    assert body["error"] == {"code": -32601, "message": "Not Found"}
    assert body["id"] is None


@pytest.mark.asyncio
async def test_wrong_method_not_found(echo_serverless):
    """测试路径正确但方法不匹配"""
    response = await echo_serverless.handle(serverless_event("/mcp", method="GET"))

    assert response["statusCode"] == 404


@pytest.mark.asyncio
async def test_malformed_event(echo_serverless):
    """测试缺少 path 的事件"""
    response = await echo_serverless.handle({"body": "{}"})

    assert response["statusCode"] == 400


@pytest.mark.asyncio
async def test_base64_body_and_method_alias(echo_serverless):
    """测试 base64 编码的请求体与 method 字段"""
    raw = mcp_body("tools/call", {"name": "echo", "arguments": {"value": "abc"}})
    event = {
        "path": "/mcp",
        "method": "post",
        "body": base64.b64encode(raw.encode()).decode(),
        "isBase64Encoded": True,
    }

    response = await echo_serverless.handle(event)

    assert _body(response)["result"]["billing"] == {"credits": 3}


@pytest.mark.asyncio
async def test_runtime_env_reaches_handler(serverless_config, settings):
    """测试 MCP_ENV 注入的环境对 handler 可见"""
    settings = settings.model_copy(update={"MCP_ENV": json.dumps({"ECHO_FLAG": "from-runtime"})})
    handler = create_server(serverless_config, make_echo_registry(), settings=settings)

    response = await handler.handle(
        serverless_event("/mcp", body=mcp_body("tools/call", {"name": "echo", "arguments": {"value": "x"}}))
    )

    assert _body(response)["result"]["structuredContent"]["env_snapshot"] == {"ECHO_FLAG": "from-runtime"}


def test_sync_entrypoint(echo_serverless):
    """测试同步入口"""
    response = echo_serverless(serverless_event("/health", method="GET"), None)

    assert response["statusCode"] == 200


class TestServerlessWebhooks:
    """Serverless webhook 路由测试"""

    @pytest.fixture
    def handler(self, serverless_config, settings):
        async def receive(request, context):
            return WebhookResponse(status=202, body={"received": request.body, "method": request.method})

        def fail(request, context):
            raise RuntimeError("boom")

        webhooks = {
            "receive": WebhookDefinition(name="receive", handler=receive),
            "fail": WebhookDefinition(name="fail", handler=fail, methods=("POST", "GET")),
        }
        return create_server(serverless_config, make_echo_registry(), webhooks=webhooks, settings=settings)

    @pytest.mark.asyncio
    async def test_webhook_json_body(self, handler):
        """测试 JSON 请求体解析"""
        event = serverless_event(
            "/webhooks/receive",
            body=json.dumps({"event": "paid"}),
            headers={"Content-Type": "application/json"},
        )

        response = await handler.handle(event)

        assert response["statusCode"] == 202
        assert _body(response) == {"received": {"event": "paid"}, "method": "POST"}
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    async def test_webhook_method_not_allowed(self, handler):
        """测试 webhook 方法不允许"""
        response = await handler.handle(serverless_event("/webhooks/receive", method="GET"))

        assert response["statusCode"] == 405

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, handler):
        """测试未注册的 webhook"""
        response = await handler.handle(serverless_event("/webhooks/missing"))

        assert response["statusCode"] == 404

    @pytest.mark.asyncio
    async def test_webhook_handler_error(self, handler):
        """测试 webhook handler 异常"""
        response = await handler.handle(serverless_event("/webhooks/fail"))

        assert response["statusCode"] == 500
        assert _body(response) == {"error": "Webhook handler error"}


@pytest.mark.asyncio
async def test_request_metrics_recorded(echo_serverless):
    """测试 serverless 请求计入共享的请求指标"""
    from prometheus_client import REGISTRY

    labels = {"runtime": "serverless", "route": "/health", "method": "GET", "status_code": "200"}
    before = REGISTRY.get_sample_value("toolhost_requests_total", labels) or 0

    await echo_serverless.handle(serverless_event("/health", method="GET"))

    assert REGISTRY.get_sample_value("toolhost_requests_total", labels) == before + 1


@pytest.mark.asyncio
async def test_unresolvable_output_ref_still_billed(serverless_config, settings):
    """测试输出 schema 的 $ref 无法解析时 /mcp 仍返回结果、计费与 id"""

    async def handler(input, context):
        return {"output": {"ok": True}, "billing": {"credits": 5}}

    tools = {
        "broken": ToolDefinition(
            name="broken",
            description="",
            handler=handler,
            output_schema={"$ref": "#/definitions/missing"},
        )
    }
    server = create_server(serverless_config, tools, settings=settings)
    body = mcp_body("tools/call", {"name": "broken", "arguments": {}}, request_id=9)

    response = await server.handle(serverless_event("/mcp", body=body))

    assert response["statusCode"] == 200
    payload = _body(response)
    assert payload["id"] == 9
    assert payload["result"]["billing"] == {"credits": 5}
    assert server.get_health_status().requests == 1


@pytest.mark.asyncio
async def test_core_proxy_paths_not_exposed(echo_serverless):
    """测试 /core 与 /core/webhook 不提供，走 404"""
    for path in ("/core", "/core/webhook"):
        response = await echo_serverless.handle(serverless_event(path, body="{}"))

        assert response["statusCode"] == 404
        assert _body(response)["error"]["code"] == -32601

"""
协议分发器

按逻辑入口（invoke / health / estimate）路由请求，驱动执行管线并序列化响应。
所有失败都转为结构化响应，dispatch 不向外抛出异常。

状态流转: Received -> Parsed -> Routed -> {Listed | Invoked | HealthRead} -> Serialized
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import structlog

from toolhost.core.errors import InvalidInputError, ToolNotFoundError
from toolhost.core.health import HealthTracker
from toolhost.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    CallArguments,
    EnvelopeError,
    MCPMethod,
    MCPRequest,
    bare_error,
    error_envelope,
    parse_json_body,
    success_envelope,
    text_content,
    to_jsonable,
)
from toolhost.tools.executor import ToolExecutor
from toolhost.tools.schemas import ExecutionMode, InvocationOutcome, ToolMetadata
from toolhost.tools.validator import violations_to_dicts
from toolhost.webhooks.registry import WebhookRegistry

logger = structlog.get_logger(__name__)


class Surface(str, Enum):
    """逻辑入口"""

    INVOKE = "invoke"
    HEALTH = "health"
    ESTIMATE = "estimate"


@dataclass(frozen=True)
class DispatchRequest:
    """分发请求（传输层已完成路径路由）"""

    surface: Surface
    body: Union[str, bytes, None] = None


@dataclass
class DispatchResponse:
    """分发响应"""

    status_code: int
    body: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(self.body, ensure_ascii=False)


class ProtocolDispatcher:
    """协议分发器"""

    def __init__(
        self,
        executor: ToolExecutor,
        tracker: HealthTracker,
        webhooks: Optional[WebhookRegistry] = None,
    ):
        self.executor = executor
        self.tracker = tracker
        self.webhooks = webhooks or WebhookRegistry()
        # 注册表只读，元数据只需渲染一次
        self._tool_metadata: List[ToolMetadata] = executor.registry.list_metadata(executor.validator)

    async def dispatch(self, request: DispatchRequest) -> DispatchResponse:
        try:
            if request.surface == Surface.HEALTH:
                return self._dispatch_health()
            if request.surface == Surface.ESTIMATE:
                return await self._dispatch_estimate(request.body)
            return await self._dispatch_invoke(request.body)
        except Exception as e:
            logger.exception("dispatch_unhandled_error", surface=request.surface.value)
            return DispatchResponse(500, error_envelope(None, INTERNAL_ERROR, str(e)))

    def list_tools(self) -> List[Dict[str, Any]]:
        return [metadata.to_dict() for metadata in self._tool_metadata]

    # ============================================================
    # health
    # ============================================================

    def _dispatch_health(self) -> DispatchResponse:
        return DispatchResponse(200, self.tracker.snapshot().to_dict())

    # ============================================================
    # invoke (/mcp)
    # ============================================================

    async def _dispatch_invoke(self, body: Union[str, bytes, None]) -> DispatchResponse:
        try:
            envelope = MCPRequest.from_payload(parse_json_body(body))
        except EnvelopeError as e:
            logger.info("mcp_envelope_rejected", code=e.code)
            return DispatchResponse(400, error_envelope(e.request_id, e.code, e.message))

        log = logger.bind(request_id=envelope.id, method=envelope.method)

        try:
            return await self._dispatch_method(envelope, log)
        except Exception as e:
            log.exception("mcp_method_failed")
            return DispatchResponse(500, error_envelope(envelope.id, INTERNAL_ERROR, str(e)))

    async def _dispatch_method(self, envelope: MCPRequest, log) -> DispatchResponse:
        if envelope.method == MCPMethod.TOOLS_LIST.value:
            log.debug("tools_list_request")
            return DispatchResponse(200, success_envelope(envelope.id, {"tools": self.list_tools()}))

        if envelope.method == MCPMethod.TOOLS_CALL.value:
            return await self._call_tool(envelope)

        if envelope.method == MCPMethod.WEBHOOKS_LIST.value:
            return DispatchResponse(
                200,
                success_envelope(envelope.id, {"webhooks": self.webhooks.list_metadata()}),
            )

        log.info("mcp_method_not_found")
        return DispatchResponse(
            200,
            error_envelope(envelope.id, METHOD_NOT_FOUND, f"Method not found: {envelope.method}"),
        )

    async def _call_tool(self, envelope: MCPRequest) -> DispatchResponse:
        tool_name = envelope.params.get("name")
        arguments = CallArguments.from_raw(envelope.params.get("arguments"))

        try:
            outcome = await self.executor.invoke(
                tool_name,
                arguments.inputs,
                mode=ExecutionMode.EXECUTE,
                env=arguments.env,
                call_context=arguments.context,
            )
        except ToolNotFoundError as e:
            return DispatchResponse(200, error_envelope(envelope.id, INVALID_PARAMS, e.message))
        except InvalidInputError as e:
            return DispatchResponse(
                200,
                error_envelope(
                    envelope.id,
                    INVALID_PARAMS,
                    e.message,
                    data={"violations": violations_to_dicts(e.violations)},
                ),
            )

        return DispatchResponse(200, success_envelope(envelope.id, self._call_result(outcome)))

    @staticmethod
    def _call_result(outcome: InvocationOutcome) -> Dict[str, Any]:
        billing = outcome.billing.model_dump()

        if outcome.is_error:
            error_output = {"error": outcome.error}
            return {
                "content": text_content(error_output),
                "structuredContent": error_output,
                "isError": True,
                "billing": billing,
            }

        output = to_jsonable(outcome.output)
        result: Dict[str, Any] = {
            "content": text_content(output),
            "billing": billing,
        }
        if isinstance(output, dict):
            result["structuredContent"] = output
        return result

    # ============================================================
    # estimate
    # ============================================================

    async def _dispatch_estimate(self, body: Union[str, bytes, None]) -> DispatchResponse:
        try:
            payload = parse_json_body(body)
        except EnvelopeError as e:
            return DispatchResponse(400, bare_error(e.code, e.message))

        if not isinstance(payload, dict):
            return DispatchResponse(400, bare_error(INVALID_REQUEST, "Invalid Request"))

        inputs = payload.get("inputs")
        call_context = payload.get("context")
        try:
            outcome = await self.executor.invoke(
                payload.get("name"),
                {} if inputs is None else inputs,
                mode=ExecutionMode.ESTIMATE,
                call_context=call_context if isinstance(call_context, dict) else None,
            )
        except ToolNotFoundError as e:
            return DispatchResponse(400, bare_error(INVALID_PARAMS, e.message))
        except InvalidInputError as e:
            return DispatchResponse(
                400,
                bare_error(
                    INVALID_PARAMS,
                    e.message,
                    data={"violations": violations_to_dicts(e.violations)},
                ),
            )

        if outcome.is_error:
            return DispatchResponse(500, bare_error(INTERNAL_ERROR, outcome.error))

        return DispatchResponse(
            200,
            {
                "output": to_jsonable(outcome.output),
                "billing": outcome.billing.model_dump(),
            },
        )

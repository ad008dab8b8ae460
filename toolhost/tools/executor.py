"""
工具执行器

负责一次工具调用的完整管线：
1. 按 name 解析工具
2. 校验输入参数
3. 构建执行上下文（环境快照 + 模式）
4. 执行 handler
5. 归一化结果（输出 + 计费），handler 异常转为失败结果
"""

import inspect
import os
import time
from typing import Any, Dict, Mapping, Optional

import structlog
from pydantic import BaseModel

from toolhost.core.errors import InvalidInputError, SchemaValidationError, ToolNotFoundError
from toolhost.core.health import HealthTracker
from toolhost.middleware.metrics import (
    record_output_validation_warning,
    record_tool_call,
    record_tool_rejected,
)
from toolhost.tools.registry import ToolDefinition, ToolRegistry
from toolhost.tools.schemas import (
    Billing,
    ExecutionContext,
    ExecutionMode,
    InvocationOutcome,
)
from toolhost.tools.validator import DefaultSchemaValidator, SchemaValidator

logger = structlog.get_logger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def normalize_billing(billing: Any) -> Billing:
    """缺失或非数字的 credits 视为 0"""
    if isinstance(billing, Billing):
        credits = billing.credits
    elif isinstance(billing, Mapping):
        credits = billing.get("credits")
    else:
        credits = getattr(billing, "credits", None)

    if isinstance(credits, bool) or not isinstance(credits, (int, float)):
        return Billing(credits=0)
    return Billing(credits=credits)


def _split_result(result: Any) -> tuple:
    """从 handler 返回值中取出 (output, billing)"""
    if isinstance(result, BaseModel):
        return getattr(result, "output", None), getattr(result, "billing", None)
    if isinstance(result, Mapping):
        return result.get("output"), result.get("billing")
    return getattr(result, "output", None), getattr(result, "billing", None)


class ToolExecutor:
    """工具执行器"""

    def __init__(
        self,
        registry: ToolRegistry,
        tracker: HealthTracker,
        validator: Optional[SchemaValidator] = None,
        runtime_env: Optional[Mapping[str, str]] = None,
    ):
        self.registry = registry
        self.tracker = tracker
        self.validator = validator or DefaultSchemaValidator()
        self._runtime_env: Dict[str, str] = dict(runtime_env or {})

    def resolve(self, tool_name: Any) -> ToolDefinition:
        """按 name 解析工具，找不到时抛出 ToolNotFoundError"""
        name = "" if tool_name is None else str(tool_name)
        tool = self.registry.get(name)
        if tool is None:
            record_tool_rejected("not_found")
            raise ToolNotFoundError(name)
        return tool

    async def validate_input(self, tool: ToolDefinition, raw_arguments: Any) -> Any:
        """校验输入，失败时抛出 InvalidInputError"""
        if tool.input_schema is None:
            return raw_arguments
        try:
            return await _maybe_await(self.validator.validate(tool.input_schema, raw_arguments))
        except SchemaValidationError as e:
            record_tool_rejected("invalid_input")
            raise InvalidInputError(tool.name, e.violations) from e

    def build_context(
        self,
        mode: ExecutionMode,
        env: Optional[Mapping[str, Optional[str]]] = None,
        call_context: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionContext:
        """进程环境 < 运行时环境 < 本次调用环境"""
        snapshot: Dict[str, Optional[str]] = dict(os.environ)
        snapshot.update(self._runtime_env)
        if env:
            snapshot.update(env)
        return ExecutionContext.build(snapshot, mode, call_context)

    async def invoke(
        self,
        tool_name: Any,
        raw_arguments: Any = None,
        mode: ExecutionMode = ExecutionMode.EXECUTE,
        env: Optional[Mapping[str, Optional[str]]] = None,
        call_context: Optional[Mapping[str, Any]] = None,
    ) -> InvocationOutcome:
        """
        执行工具调用

        Raises:
            ToolNotFoundError: 工具不存在
            InvalidInputError: 输入校验失败

        handler 抛出的异常不会向外传播，而是作为失败结果返回
        """
        log = logger.bind(tool_name=str(tool_name), mode=mode.value)

        # 1. 获取工具定义
        tool = self.resolve(tool_name)

        # 2. 校验输入
        if raw_arguments is None:
            raw_arguments = {}
        validated_input = await self.validate_input(tool, raw_arguments)

        # 3. 构建上下文
        context = self.build_context(mode, env, call_context)

        # 4. 执行 handler；只有 execute 模式计入请求数
        if mode == ExecutionMode.EXECUTE:
            self.tracker.increment()

        log.info("tool_call_start")
        start_time = time.perf_counter()

        try:
            result = await _maybe_await(tool.handler(validated_input, context))
            output, billing = _split_result(result)
        except Exception as e:
            duration = time.perf_counter() - start_time
            error_message = str(e)
            record_tool_call(tool.name, mode.value, duration, success=False)
            log.error(
                "tool_call_error",
                error_type=type(e).__name__,
                error=error_message,
                latency_ms=int(duration * 1000),
            )
            return InvocationOutcome(
                tool_name=tool.name,
                mode=mode,
                output=None,
                billing=Billing(credits=0),
                error=error_message,
            )

        duration = time.perf_counter() - start_time
        normalized = normalize_billing(billing)
        record_tool_call(tool.name, mode.value, duration, success=True, credits=normalized.credits)
        log.info(
            "tool_call_success",
            latency_ms=int(duration * 1000),
            credits=normalized.credits,
        )

        # 5. 输出校验仅作告警
        outcome = InvocationOutcome(
            tool_name=tool.name,
            mode=mode,
            output=output,
            billing=normalized,
        )
        await self._check_output(tool, outcome, log)
        return outcome

    async def _check_output(self, tool: ToolDefinition, outcome: InvocationOutcome, log) -> None:
        if tool.output_schema is None:
            return
        try:
            await _maybe_await(self.validator.validate(tool.output_schema, outcome.output))
        except SchemaValidationError as e:
            outcome.output_violations = e.violations
            record_output_validation_warning(tool.name)
            log.warning(
                "tool_output_validation_failed",
                violations=[v.to_dict() for v in e.violations],
            )
        except Exception as e:
            # schema 本身无法使用（如 $ref 无法解析），结果照常返回
            record_output_validation_warning(tool.name)
            log.warning(
                "tool_output_validation_error",
                error_type=type(e).__name__,
                error=str(e),
            )

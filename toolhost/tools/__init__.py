"""
工具模块

工具定义、只读注册表、schema 校验与执行管线
"""

from toolhost.tools.executor import ToolExecutor
from toolhost.tools.registry import ToolDefinition, ToolRegistry
from toolhost.tools.schemas import (
    Billing,
    ExecutionContext,
    ExecutionMode,
    InvocationOutcome,
    InvocationResult,
    ToolMetadata,
    ToolTrigger,
)
from toolhost.tools.validator import DefaultSchemaValidator, SchemaValidator

__all__ = [
    "Billing",
    "DefaultSchemaValidator",
    "ExecutionContext",
    "ExecutionMode",
    "InvocationOutcome",
    "InvocationResult",
    "SchemaValidator",
    "ToolDefinition",
    "ToolExecutor",
    "ToolMetadata",
    "ToolRegistry",
    "ToolTrigger",
]

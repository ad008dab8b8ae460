"""
工具调用数据模型

- ExecutionContext: 每次调用独立构建、不可变
- InvocationResult: 工具 handler 的返回值（输出 + 计费）
- InvocationOutcome: 执行管线的归一化结果
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from toolhost.core.errors import Violation


class ExecutionMode(str, Enum):
    """执行模式"""

    EXECUTE = "execute"
    ESTIMATE = "estimate"


class ToolTrigger(str, Enum):
    """调用来源"""

    AGENT = "agent"
    FIELD_CHANGE = "field_change"
    PAGE_ACTION = "page_action"


def resolve_trigger(call_context: Mapping[str, Any]) -> ToolTrigger:
    """field > fieldValues > 显式 trigger > agent"""
    if call_context.get("field"):
        return ToolTrigger.FIELD_CHANGE
    if call_context.get("fieldValues"):
        return ToolTrigger.PAGE_ACTION
    try:
        return ToolTrigger(call_context.get("trigger") or ToolTrigger.AGENT)
    except ValueError:
        return ToolTrigger.AGENT


def _frozen(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType(dict(value))
    return None


@dataclass(frozen=True)
class ExecutionContext:
    """
    工具执行上下文

    env 为调用时刻的环境快照，外部修改不会影响正在执行的 handler；
    trigger / app_installation_id / workplace / field / field_values 来自调用方传入的 context
    """

    env: Mapping[str, Optional[str]]
    mode: ExecutionMode = ExecutionMode.EXECUTE
    trigger: ToolTrigger = ToolTrigger.AGENT
    app_installation_id: Optional[str] = None
    workplace: Optional[Mapping[str, Any]] = None
    field: Optional[Mapping[str, Any]] = None
    field_values: Optional[Mapping[str, Any]] = None

    @classmethod
    def build(
        cls,
        env: Mapping[str, Optional[str]],
        mode: ExecutionMode,
        call_context: Optional[Mapping[str, Any]] = None,
    ) -> "ExecutionContext":
        call_context = call_context or {}
        app_installation_id = call_context.get("appInstallationId")
        return cls(
            env=MappingProxyType(dict(env)),
            mode=mode,
            trigger=resolve_trigger(call_context),
            app_installation_id=None if app_installation_id is None else str(app_installation_id),
            workplace=_frozen(call_context.get("workplace")),
            field=_frozen(call_context.get("field")),
            field_values=_frozen(call_context.get("fieldValues")),
        )

    @property
    def is_estimate(self) -> bool:
        return self.mode == ExecutionMode.ESTIMATE


class Billing(BaseModel):
    """计费信息"""

    credits: Union[int, float] = 0


class InvocationResult(BaseModel):
    """工具 handler 返回值"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    output: Any = None
    billing: Billing = Field(default_factory=Billing)


@dataclass
class InvocationOutcome:
    """执行管线结果"""

    tool_name: str
    mode: ExecutionMode
    output: Any = None
    billing: Billing = field(default_factory=Billing)
    error: Optional[str] = None
    output_violations: List[Violation] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class ToolMetadata(BaseModel):
    """tools/list 中的工具元数据"""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: Optional[Dict[str, Any]] = Field(None, alias="inputSchema")
    output_schema: Optional[Dict[str, Any]] = Field(None, alias="outputSchema")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

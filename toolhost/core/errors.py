"""
错误类型定义

调度层所有可预期的失败都以这些异常表示，
在执行管线 / 协议分发边界被捕获并转换为结构化响应
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence


@dataclass(frozen=True)
class Violation:
    """单条 schema 校验违规"""

    path: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "message": self.message}


class ToolHostError(Exception):
    """工具托管错误基类"""

    error_code: str = "TOOLHOST_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(ToolHostError):
    """服务器配置无效"""

    error_code = "INVALID_CONFIGURATION"


class DuplicateToolNameError(ToolHostError):
    """注册表中存在重复的工具名称"""

    error_code = "DUPLICATE_TOOL_NAME"


class ToolNotFoundError(ToolHostError):
    """按名称找不到工具"""

    error_code = "TOOL_NOT_FOUND"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f'Tool "{tool_name}" not found')


class SchemaValidationError(ToolHostError):
    """值不符合 schema"""

    error_code = "SCHEMA_VALIDATION_FAILED"

    def __init__(self, violations: Sequence[Violation], message: str = "Schema validation failed"):
        self.violations: List[Violation] = list(violations)
        super().__init__(message)


class InvalidInputError(ToolHostError):
    """工具输入参数校验失败"""

    error_code = "INVALID_INPUT"

    def __init__(self, tool_name: str, violations: Sequence[Violation]):
        self.tool_name = tool_name
        self.violations: List[Violation] = list(violations)
        summary = "; ".join(f"{v.path or '<root>'}: {v.message}" for v in self.violations)
        super().__init__(f'Invalid arguments for tool "{tool_name}": {summary}')

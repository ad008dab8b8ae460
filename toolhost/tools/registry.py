"""
工具注册表

由调用方构建好后传入，运行期只读
- key: 注册表内唯一
- name: 调用时唯一，可以与 key 不同；调用解析只按 name
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from toolhost.core.errors import DuplicateToolNameError
from toolhost.tools.schemas import ToolMetadata
from toolhost.tools.validator import DefaultSchemaValidator, SchemaValidator


@dataclass(frozen=True)
class ToolDefinition:
    """工具定义"""

    name: str
    description: str
    handler: Callable[..., Any]
    input_schema: Any = None
    output_schema: Any = None

    def to_metadata(self, validator: Optional[SchemaValidator] = None) -> ToolMetadata:
        """转换为元数据"""
        validator = validator or DefaultSchemaValidator()
        return ToolMetadata(
            name=self.name,
            description=self.description,
            input_schema=validator.json_schema(self.input_schema),
            output_schema=validator.json_schema(self.output_schema),
        )


class ToolRegistry:
    """
    只读工具注册表

    保持插入顺序；构建时校验 name 唯一
    """

    def __init__(self, tools: Mapping[str, ToolDefinition]):
        entries: Dict[str, ToolDefinition] = {}
        by_name: Dict[str, ToolDefinition] = {}

        for key, tool in tools.items():
            if not callable(tool.handler):
                raise TypeError(f'Tool "{tool.name}" handler is not callable')
            if tool.name in by_name:
                raise DuplicateToolNameError(
                    f'Duplicate tool name "{tool.name}" (registry key "{key}")'
                )
            entries[key] = tool
            by_name[tool.name] = tool

        self._entries = MappingProxyType(entries)
        self._by_name = MappingProxyType(by_name)

    @classmethod
    def of(cls, tools: "Mapping[str, ToolDefinition] | ToolRegistry") -> "ToolRegistry":
        if isinstance(tools, ToolRegistry):
            return tools
        return cls(tools)

    @property
    def entries(self) -> Mapping[str, ToolDefinition]:
        return self._entries

    def get(self, name: str) -> Optional[ToolDefinition]:
        """按 name 获取工具定义（不按 key）"""
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return [tool.name for tool in self._entries.values()]

    def list_all(self) -> List[ToolDefinition]:
        """列出所有工具"""
        return list(self._entries.values())

    def list_metadata(self, validator: Optional[SchemaValidator] = None) -> List[ToolMetadata]:
        """列出所有工具元数据"""
        return [tool.to_metadata(validator) for tool in self._entries.values()]

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

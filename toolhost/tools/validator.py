"""
Schema 校验适配层

支持两类 schema：
- pydantic 模型 / 任意 TypeAdapter 可接受的类型
- JSON Schema 字典（jsonschema 校验）

validate 成功返回校验后的值，失败抛出 SchemaValidationError
"""

from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Protocol

import structlog
from jsonschema import validators as jsonschema_validators
from pydantic import TypeAdapter, ValidationError

from toolhost.core.errors import SchemaValidationError, Violation

logger = structlog.get_logger(__name__)


class SchemaValidator(Protocol):
    """可插拔校验器接口，validate 可以是同步或异步实现"""

    def validate(self, schema: Any, value: Any) -> Any:
        ...

    def json_schema(self, schema: Any) -> Optional[Dict[str, Any]]:
        ...


def _format_loc(loc) -> str:
    return ".".join(str(part) for part in loc)


@lru_cache(maxsize=256)
def _type_adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _adapter_for(schema: Any) -> TypeAdapter:
    try:
        return _type_adapter(schema)
    except TypeError:
        # 不可哈希的类型不走缓存
        return TypeAdapter(schema)


class DefaultSchemaValidator:
    """默认校验器：dict 走 jsonschema，其余走 pydantic"""

    def validate(self, schema: Any, value: Any) -> Any:
        if schema is None:
            return value
        if isinstance(schema, Mapping):
            return self._validate_json_schema(schema, value)
        return self._validate_pydantic(schema, value)

    def _validate_pydantic(self, schema: Any, value: Any) -> Any:
        try:
            return _adapter_for(schema).validate_python(value)
        except ValidationError as e:
            violations = [
                Violation(path=_format_loc(err.get("loc", ())), message=err.get("msg", ""))
                for err in e.errors()
            ]
            raise SchemaValidationError(violations) from e

    def _validate_json_schema(self, schema: Mapping[str, Any], value: Any) -> Any:
        validator_cls = jsonschema_validators.validator_for(schema)
        validator = validator_cls(schema)
        errors = sorted(validator.iter_errors(value), key=lambda err: list(err.absolute_path))
        if errors:
            violations = [
                Violation(path=_format_loc(err.absolute_path), message=err.message)
                for err in errors
            ]
            raise SchemaValidationError(violations)
        return value

    def json_schema(self, schema: Any) -> Optional[Dict[str, Any]]:
        """渲染 schema 为 JSON Schema，用于 tools/list"""
        if schema is None:
            return None
        if isinstance(schema, Mapping):
            return dict(schema)
        try:
            return _adapter_for(schema).json_schema()
        except Exception as e:
            logger.warning("json_schema_render_failed", schema=repr(schema), error=str(e))
            return None


def violations_to_dicts(violations: List[Violation]) -> List[Dict[str, Any]]:
    return [v.to_dict() for v in violations]

"""
Webhook 注册表

handle -> WebhookDefinition，路由为 /webhooks/{handle}
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


@dataclass(frozen=True)
class WebhookRequest:
    """传给 webhook handler 的请求"""

    method: str
    path: str
    url: str
    headers: Mapping[str, str]
    query: Mapping[str, str]
    body: Any = None
    raw_body: Optional[bytes] = None


@dataclass(frozen=True)
class WebhookContext:
    """webhook 执行上下文"""

    env: Mapping[str, Optional[str]]


@dataclass
class WebhookResponse:
    """webhook handler 返回值"""

    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class WebhookDefinition:
    """Webhook 定义"""

    name: str
    handler: Callable[..., Any]
    description: str = ""
    methods: Tuple[str, ...] = ("POST",)

    def __post_init__(self):
        methods = tuple(m.upper() for m in self.methods)
        unknown = [m for m in methods if m not in HTTP_METHODS]
        if unknown:
            raise ValueError(f"Unsupported webhook methods: {unknown}")
        object.__setattr__(self, "methods", methods)

    def allows(self, method: str) -> bool:
        return method.upper() in self.methods

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "methods": list(self.methods),
        }


class WebhookRegistry:
    """只读 webhook 注册表"""

    def __init__(self, webhooks: Optional[Mapping[str, WebhookDefinition]] = None):
        self._webhooks = MappingProxyType(dict(webhooks or {}))

    @classmethod
    def of(cls, webhooks: "Mapping[str, WebhookDefinition] | WebhookRegistry | None") -> "WebhookRegistry":
        if isinstance(webhooks, WebhookRegistry):
            return webhooks
        return cls(webhooks)

    def get(self, handle: str) -> Optional[WebhookDefinition]:
        return self._webhooks.get(handle)

    def handles(self) -> Sequence[str]:
        return list(self._webhooks.keys())

    def list_metadata(self) -> List[Dict[str, Any]]:
        return [webhook.to_dict() for webhook in self._webhooks.values()]

    def __len__(self) -> int:
        return len(self._webhooks)

    def __bool__(self) -> bool:
        return bool(self._webhooks)

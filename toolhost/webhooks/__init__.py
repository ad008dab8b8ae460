"""
Webhook 模块

/webhooks/{handle} 路由与 webhooks/list 元数据
"""

from toolhost.webhooks.registry import (
    WebhookContext,
    WebhookDefinition,
    WebhookRegistry,
    WebhookRequest,
    WebhookResponse,
)
from toolhost.webhooks.router import WebhookResult, WebhookRouter

__all__ = [
    "WebhookContext",
    "WebhookDefinition",
    "WebhookRegistry",
    "WebhookRequest",
    "WebhookResponse",
    "WebhookResult",
    "WebhookRouter",
]

"""
运行时适配器共享部分

两种部署形态共用同一个分发器实例，只暴露 dispatch 能力
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from toolhost.core.config import ServerConfig, Settings
from toolhost.core.health import HealthSnapshot, HealthTracker
from toolhost.mcp.dispatcher import ProtocolDispatcher
from toolhost.webhooks.router import WebhookRouter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RuntimeComponents:
    """create_server 构建好的组件，适配器只读持有"""

    config: ServerConfig
    settings: Settings
    dispatcher: ProtocolDispatcher
    tracker: HealthTracker
    webhook_router: WebhookRouter

    def health(self) -> HealthSnapshot:
        return self.tracker.snapshot()


def log_startup(components: RuntimeComponents, port: Optional[int] = None) -> None:
    """输出启动信息"""
    config = components.config
    snapshot = components.tracker.snapshot()
    logger.info(
        "server_starting",
        server=config.metadata.name,
        version=config.metadata.version,
        compute_layer=config.compute_layer.value,
        port=port,
        tools=snapshot.tools,
        tool_count=len(snapshot.tools),
        webhooks=list(components.webhook_router.registry.handles()),
        max_requests=snapshot.max_requests if snapshot.max_requests is not None else "unlimited",
        ttl_extend_seconds=snapshot.ttl_extend_seconds,
    )

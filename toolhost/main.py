"""
toolhost 主入口

根据 computeLayer 构建 dedicated 或 serverless 运行时：
注册表、计数器、执行器、分发器只在构建时创建一次
"""

from typing import Any, Mapping, Optional, Union

from toolhost.core.config import ComputeLayer, ServerConfig, Settings, get_settings, load_server_config
from toolhost.core.health import HealthTracker
from toolhost.core.logging import setup_logging
from toolhost.mcp.dispatcher import ProtocolDispatcher
from toolhost.runtime.base import RuntimeComponents
from toolhost.runtime.dedicated import DedicatedServer
from toolhost.runtime.serverless import ServerlessHandler
from toolhost.tools.executor import ToolExecutor
from toolhost.tools.registry import ToolDefinition, ToolRegistry
from toolhost.tools.validator import DefaultSchemaValidator, SchemaValidator
from toolhost.webhooks.registry import WebhookDefinition, WebhookRegistry
from toolhost.webhooks.router import WebhookRouter

ServerInstance = Union[DedicatedServer, ServerlessHandler]


def build_components(
    config: Union[ServerConfig, Mapping[str, Any]],
    registry: Union[ToolRegistry, Mapping[str, ToolDefinition]],
    webhooks: Union[WebhookRegistry, Mapping[str, WebhookDefinition], None] = None,
    settings: Optional[Settings] = None,
    validator: Optional[SchemaValidator] = None,
) -> RuntimeComponents:
    """构建运行时组件"""
    server_config = load_server_config(config)
    settings = settings or get_settings()
    tool_registry = ToolRegistry.of(registry)
    webhook_registry = WebhookRegistry.of(webhooks)
    runtime_env = settings.runtime_env()

    tracker = HealthTracker(
        runtime=server_config.compute_layer.value,
        tool_names=tool_registry.names(),
        max_requests=server_config.resolve_max_requests(settings),
        ttl_extend_seconds=server_config.resolve_ttl_extend(settings),
    )
    executor = ToolExecutor(
        registry=tool_registry,
        tracker=tracker,
        validator=validator or DefaultSchemaValidator(),
        runtime_env=runtime_env,
    )
    dispatcher = ProtocolDispatcher(executor, tracker, webhook_registry)

    return RuntimeComponents(
        config=server_config,
        settings=settings,
        dispatcher=dispatcher,
        tracker=tracker,
        webhook_router=WebhookRouter(webhook_registry, runtime_env),
    )


def create_server(
    config: Union[ServerConfig, Mapping[str, Any]],
    registry: Union[ToolRegistry, Mapping[str, ToolDefinition]],
    webhooks: Union[WebhookRegistry, Mapping[str, WebhookDefinition], None] = None,
    settings: Optional[Settings] = None,
    validator: Optional[SchemaValidator] = None,
) -> ServerInstance:
    """
    创建服务器实例

    Args:
        config: 服务器配置（computeLayer / metadata ...）
        registry: key -> ToolDefinition 的有序映射
        webhooks: handle -> WebhookDefinition（可选）
        settings: 环境配置，默认读取环境变量
        validator: 自定义 schema 校验器

    Returns:
        computeLayer 为 dedicated 时返回 DedicatedServer，否则返回 ServerlessHandler
    """
    setup_logging()
    components = build_components(config, registry, webhooks, settings, validator)

    if components.config.compute_layer == ComputeLayer.DEDICATED:
        return DedicatedServer(components)
    return ServerlessHandler(components)

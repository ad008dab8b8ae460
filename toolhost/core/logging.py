"""
日志配置

structlog + 标准库 logging，开发环境输出彩色控制台，生产环境输出 JSON
"""

import logging
import sys
from typing import Optional

import structlog

from toolhost.core.config import get_settings

_configured = False


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """初始化日志（重复调用只生效一次）"""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.LOG_JSON or settings.is_production

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        final_processors = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer 自行渲染异常
        final_processors = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final_processors,
        ],
    )

    # stderr 输出，stdout 留给 serverless 平台的响应通道
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_name)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True

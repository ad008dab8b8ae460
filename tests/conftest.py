"""
测试配置和 fixtures
"""

from typing import Any, Dict

import pytest

from toolhost.core.config import Settings
from toolhost.main import create_server

from factories import make_echo_registry


@pytest.fixture
def settings() -> Settings:
    """与宿主环境隔离的配置"""
    return Settings(
        _env_file=None,
        PORT=None,
        MCP_MAX_REQUESTS=None,
        MCP_TTL_EXTEND=None,
        MCP_ENV_JSON=None,
        MCP_ENV=None,
    )


@pytest.fixture
def serverless_config() -> Dict[str, Any]:
    return {
        "computeLayer": "serverless",
        "metadata": {"name": "handler-test", "version": "0.0.1"},
    }


@pytest.fixture
def dedicated_config() -> Dict[str, Any]:
    return {
        "computeLayer": "dedicated",
        "metadata": {"name": "dedicated-test", "version": "0.0.1"},
    }


@pytest.fixture
def echo_serverless(serverless_config, settings):
    return create_server(serverless_config, make_echo_registry(), settings=settings)


@pytest.fixture
def echo_dedicated(dedicated_config, settings):
    return create_server(dedicated_config, make_echo_registry(), settings=settings)

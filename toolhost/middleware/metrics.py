"""
Prometheus 指标

两种部署形态共用同一组请求指标（按 runtime / route 区分），
另有工具调用、拒绝、输出校验告警、credits 指标
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

# 固定路由，其余路径归为 other
KNOWN_ROUTES = ("/mcp", "/health", "/estimate")
WEBHOOK_ROUTE = "/webhooks/{handle}"


# ============================================================
# 请求指标
# ============================================================

REQUESTS_TOTAL = Counter(
    "toolhost_requests_total",
    "Requests handled by the transport adapters",
    ["runtime", "route", "method", "status_code"],
)

REQUEST_DURATION_SECONDS = Histogram(
    "toolhost_request_duration_seconds",
    "End-to-end request latency per route",
    ["runtime", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUESTS_INFLIGHT = Gauge(
    "toolhost_requests_inflight",
    "Requests currently being handled",
    ["runtime", "route"],
)


# ============================================================
# 工具调用指标
# ============================================================

TOOL_CALLS_TOTAL = Counter(
    "toolhost_tool_calls_total",
    "Total tool invocations that reached the handler",
    ["tool", "mode", "status"],  # status: success | error
)

TOOL_CALL_DURATION_SECONDS = Histogram(
    "toolhost_tool_call_duration_seconds",
    "Tool handler duration in seconds",
    ["tool"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

TOOL_CALLS_REJECTED_TOTAL = Counter(
    "toolhost_tool_calls_rejected_total",
    "Tool invocations rejected before execution",
    ["reason"],  # reason: not_found | invalid_input
)

OUTPUT_VALIDATION_WARNINGS_TOTAL = Counter(
    "toolhost_output_validation_warnings_total",
    "Tool outputs that did not match the declared output schema",
    ["tool"],
)

TOOL_CREDITS_TOTAL = Counter(
    "toolhost_tool_credits_total",
    "Credits reported by tool handlers",
    ["tool", "mode"],
)


def route_label(path: str) -> str:
    """路径归一为低基数的 route 标签"""
    if path.startswith("/webhooks/"):
        return WEBHOOK_ROUTE
    if path in KNOWN_ROUTES:
        return path
    return "other"


def observe_request(runtime: str, route: str, method: str, status_code: int, duration: float) -> None:
    REQUESTS_TOTAL.labels(
        runtime=runtime,
        route=route,
        method=method,
        status_code=str(status_code),
    ).inc()
    REQUEST_DURATION_SECONDS.labels(runtime=runtime, route=route).observe(duration)


# ============================================================
# Dedicated 中间件
# ============================================================

class MetricsMiddleware(BaseHTTPMiddleware):
    """dedicated 模式的请求指标采集"""

    runtime = "dedicated"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        route = route_label(request.url.path)
        inflight = REQUESTS_INFLIGHT.labels(runtime=self.runtime, route=route)
        inflight.inc()
        started = time.perf_counter()
        # call_next 抛出时按 500 计
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            inflight.dec()
            observe_request(
                self.runtime,
                route,
                request.method,
                status_code,
                time.perf_counter() - started,
            )


async def metrics_endpoint(request: Request) -> Response:
    """GET /metrics"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================
# 工具调用记录
# ============================================================

def record_tool_call(tool: str, mode: str, duration: float, success: bool = True, credits: float = 0):
    """记录一次到达 handler 的调用"""
    TOOL_CALL_DURATION_SECONDS.labels(tool=tool).observe(duration)
    TOOL_CALLS_TOTAL.labels(tool=tool, mode=mode, status="success" if success else "error").inc()
    if credits > 0:
        TOOL_CREDITS_TOTAL.labels(tool=tool, mode=mode).inc(credits)


def record_tool_rejected(reason: str):
    TOOL_CALLS_REJECTED_TOTAL.labels(reason=reason).inc()


def record_output_validation_warning(tool: str):
    OUTPUT_VALIDATION_WARNINGS_TOTAL.labels(tool=tool).inc()

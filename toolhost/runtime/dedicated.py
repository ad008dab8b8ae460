"""
Dedicated 适配器

常驻进程：FastAPI 应用 + uvicorn 监听端口
- POST /mcp: 调用面
- GET /health: 健康状态
- POST /estimate: 计费预估
- /webhooks/{handle}: webhook
- GET /metrics: Prometheus 指标

每个连接对应一次独立的分发，连接之间只共享只读注册表和计数器
"""

import asyncio
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from toolhost.core.health import HealthSnapshot
from toolhost.mcp.dispatcher import DispatchRequest, DispatchResponse, Surface
from toolhost.mcp.protocol import METHOD_NOT_FOUND, error_envelope
from toolhost.middleware.metrics import MetricsMiddleware, metrics_endpoint
from toolhost.runtime.base import RuntimeComponents, log_startup

logger = structlog.get_logger(__name__)

# 达到请求上限后延迟关闭（秒）
SHUTDOWN_GRACE_SECONDS = 1.0


class ListenerHandle:
    """
    监听句柄

    stop() 停止接受新连接并释放端口，不会中断进行中的调用
    """

    def __init__(self, server: uvicorn.Server, task: "asyncio.Task[None]", port: int):
        self._server = server
        self._task = task
        self.port = port

    @property
    def is_running(self) -> bool:
        return not self._task.done()

    def request_stop(self) -> None:
        self._server.should_exit = True

    async def stop(self) -> None:
        self.request_stop()
        await self._task

    async def wait(self) -> None:
        await self._task


class DedicatedServer:
    """Dedicated 运行时实例"""

    def __init__(self, components: RuntimeComponents):
        self._components = components
        self._handle: Optional[ListenerHandle] = None
        self.app = self._create_app()

    def get_health_status(self) -> HealthSnapshot:
        """进程内直接读取计数器，不经过网络"""
        return self._components.health()

    # ============================================================
    # FastAPI 应用
    # ============================================================

    def _create_app(self) -> FastAPI:
        config = self._components.config
        settings = self._components.settings

        app = FastAPI(
            title=config.metadata.name,
            version=config.metadata.version,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        app.add_middleware(MetricsMiddleware)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

        dispatcher = self._components.dispatcher
        webhook_router = self._components.webhook_router

        async def _dispatch(surface: Surface, request: Optional[Request] = None) -> JSONResponse:
            body = await request.body() if request is not None else None
            response: DispatchResponse = await dispatcher.dispatch(
                DispatchRequest(surface=surface, body=body),
            )
            return JSONResponse(content=response.body, status_code=response.status_code)

        @app.post("/mcp")
        async def mcp(request: Request) -> JSONResponse:
            response = await _dispatch(Surface.INVOKE, request)
            self._check_max_requests()
            return response

        @app.get("/health")
        async def health() -> JSONResponse:
            return await _dispatch(Surface.HEALTH)

        @app.post("/estimate")
        async def estimate(request: Request) -> JSONResponse:
            return await _dispatch(Surface.ESTIMATE, request)

        @app.api_route("/webhooks/{handle}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
        async def webhook(handle: str, request: Request) -> Response:
            raw_body = (await request.body()).decode("utf-8", errors="replace")
            result = await webhook_router.handle(
                handle,
                request.method,
                request.url.path,
                str(request.url),
                dict(request.headers),
                dict(request.query_params),
                raw_body,
            )
            return Response(content=result.body, status_code=result.status, headers=result.headers)

        app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

        @app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
            if exc.status_code == 404:
                return JSONResponse(
                    content=error_envelope(None, METHOD_NOT_FOUND, "Not Found"),
                    status_code=404,
                )
            return JSONResponse(content={"detail": exc.detail}, status_code=exc.status_code)

        return app

    def _check_max_requests(self) -> None:
        if not self._components.tracker.should_shutdown():
            return
        if self._handle is None or not self._handle.is_running:
            return
        logger.warning("max_requests_reached", max_requests=self._components.tracker.max_requests)
        asyncio.get_running_loop().call_later(SHUTDOWN_GRACE_SECONDS, self._handle.request_stop)

    # ============================================================
    # 监听
    # ============================================================

    async def listen(self, port: Optional[int] = None, host: Optional[str] = None) -> ListenerHandle:
        """
        绑定端口并开始接受连接，启动完成后返回句柄

        port 为 0 时使用随机端口，实际端口见 handle.port
        """
        if self._handle is not None and self._handle.is_running:
            raise RuntimeError("Server is already listening")

        settings = self._components.settings
        bind_port = self._components.config.resolve_port(settings, port)
        bind_host = host or settings.HOST

        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=bind_host,
                port=bind_port,
                log_config=None,
                access_log=False,
                lifespan="off",
            )
        )

        async def _serve() -> None:
            try:
                await server.serve()
            except SystemExit as e:
                # uvicorn 绑定失败时调用 sys.exit
                raise OSError(f"Failed to listen on {bind_host}:{bind_port}") from e

        task = asyncio.create_task(_serve())
        while not server.started:
            if task.done():
                # 启动失败，抛出原始异常
                task.result()
                raise OSError(f"Server on {bind_host}:{bind_port} exited during startup")
            await asyncio.sleep(0.01)

        actual_port = bind_port
        if server.servers and server.servers[0].sockets:
            actual_port = server.servers[0].sockets[0].getsockname()[1]

        self._handle = ListenerHandle(server, task, actual_port)
        log_startup(self._components, port=actual_port)
        return self._handle

    async def serve_forever(self, port: Optional[int] = None, host: Optional[str] = None) -> None:
        handle = await self.listen(port, host)
        await handle.wait()
        logger.info("server_stopped", port=handle.port)

    def serve(self, port: Optional[int] = None, host: Optional[str] = None) -> None:
        """阻塞运行直到停止"""
        asyncio.run(self.serve_forever(port, host))

"""
运行状态追踪

进程级的工具调用计数与已注册工具列表，供 /health 只读查询
"""

import threading
import time
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


class HealthSnapshot(BaseModel):
    """健康状态快照"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    status: Literal["running"] = "running"
    runtime: str
    tools: List[str]
    requests: int
    max_requests: Optional[int] = Field(None, alias="maxRequests")
    requests_remaining: Optional[int] = Field(None, alias="requestsRemaining")
    last_request_time: int = Field(..., alias="lastRequestTime")
    ttl_extend_seconds: int = Field(..., alias="ttlExtendSeconds")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class HealthTracker:
    """
    请求计数器

    increment / snapshot 由同一把锁串行化，
    并发读写不会丢失更新，也不会读到半更新状态
    """

    def __init__(
        self,
        runtime: str,
        tool_names: Sequence[str],
        max_requests: Optional[int] = None,
        ttl_extend_seconds: int = 3600,
    ):
        self._runtime = runtime
        self._tool_names = tuple(tool_names)
        self._max_requests = max_requests
        self._ttl_extend_seconds = ttl_extend_seconds
        self._lock = threading.Lock()
        self._requests = 0
        self._last_request_time = _now_ms()

    @property
    def max_requests(self) -> Optional[int]:
        return self._max_requests

    def increment(self) -> int:
        """记录一次已服务的调用，返回新的计数"""
        with self._lock:
            self._requests += 1
            self._last_request_time = _now_ms()
            return self._requests

    def should_shutdown(self) -> bool:
        """是否已达到请求上限"""
        with self._lock:
            return self._max_requests is not None and self._requests >= self._max_requests

    def snapshot(self) -> HealthSnapshot:
        with self._lock:
            requests = self._requests
            last_request_time = self._last_request_time

        remaining = None
        if self._max_requests is not None:
            remaining = max(0, self._max_requests - requests)

        return HealthSnapshot(
            runtime=self._runtime,
            tools=list(self._tool_names),
            requests=requests,
            max_requests=self._max_requests,
            requests_remaining=remaining,
            last_request_time=last_request_time,
            ttl_extend_seconds=self._ttl_extend_seconds,
        )

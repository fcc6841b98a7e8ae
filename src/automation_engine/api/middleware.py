"""
API 中间件
"""
import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


logger = logging.getLogger(__name__)

# 成功时只记 debug 的路径
QUIET_PATHS = ("/api/v1/health",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """为每个请求分配 request id 并记录耗时"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 沿用调用方传入的 X-Request-ID
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        label = f"{request.method} {request.url.path} [request_id={request_id}]"

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(f"Request crashed: {label}", exc_info=True)
            raise
        elapsed = time.perf_counter() - started

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif request.url.path in QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, f"{label} -> {response.status_code} in {elapsed * 1000:.1f}ms")

        return response

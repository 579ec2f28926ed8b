"""Rate limiting middleware — Redis fixed window per client.

Learn: Each client gets a counter key "eduverse:rl:{ip}:{minute}" that
expires after two minutes. The Redis connection is the one the change feed
already holds (app.state.redis), so no extra pool is opened.

Skipped entirely when Redis is not configured or not reachable — a rate
limiter outage must never take the dashboard down with it.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

EXEMPT_PATHS = ("/api/v1/health",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, rpm: int = 120):
        super().__init__(app)
        self.rpm = rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        redis = getattr(request.app.state, "redis", None)
        if redis is None or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        key = f"eduverse:rl:{client_ip}:{int(time.time() // 60)}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            logger.warning("eduverse.rate_limit.unavailable", error=str(e))
            return await call_next(request)

        if count > self.rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.rpm - count))
        return response

import threading
import time
from typing import Callable, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ratelimit_probe.tiers import DEFAULT_TIERS, WINDOW_SECONDS


DEFAULT_KEYS = {
    "test-api-key-local-dev": "PREMIUM",
    "test-api-key-basic": "BASIC",
    "test-api-key-standard": "STANDARD",
}


class FixedWindowLimiter:
    """Per-key request counter reset at every minute boundary."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._lock = threading.Lock()
        self._counts: Dict[tuple, int] = {}
        self._window: Optional[int] = None

    def check(self, key: str, limit: int):
        now = self.clock()
        window = int(now) - int(now) % WINDOW_SECONDS
        with self._lock:
            if window != self._window:
                # only the current window is ever read
                self._counts = {k: v for k, v in self._counts.items() if k[1] == window}
                self._window = window
            count = self._counts.get((key, window), 0) + 1
            self._counts[(key, window)] = count
        reset = WINDOW_SECONDS - int(now) % WINDOW_SECONDS
        return count <= limit, max(0, limit - count), reset


def create_app(
    keys: Optional[Dict[str, str]] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    keys = keys if keys is not None else DEFAULT_KEYS
    limiter = FixedWindowLimiter(clock)
    app = FastAPI(title="Mock Rate-Limited Service")

    @app.middleware("http")
    async def rate_limit(request, call_next):
        api_key = request.headers.get("x-api-key")
        tier = keys.get(api_key)
        if tier is None:
            return JSONResponse({"error": "unauthorized"}, status_code=401)
        limit = DEFAULT_TIERS[tier]
        allowed, remaining, reset = limiter.check(api_key, limit)
        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset),
        }
        if not allowed:
            headers["Retry-After"] = str(reset)
            return JSONResponse(
                {
                    "error": "rate_limit_exceeded",
                    "message": "Rate limit exceeded. Please retry after the reset time.",
                    "retryAfter": reset,
                },
                status_code=429,
                headers=headers,
            )
        response = await call_next(request)
        response.headers.update(headers)
        return response

    @app.get("/api/users")
    async def users(page: int = 0, size: int = 20):
        return {"content": [{"id": page * size + i} for i in range(size)], "page": page}

    @app.get("/api/products")
    async def products(page: int = 0, size: int = 20):
        return {"content": [{"sku": f"P-{page * size + i}"} for i in range(size)], "page": page}

    @app.get("/api/orders/{order_id}")
    async def order(order_id: int):
        if order_id > 50:
            return JSONResponse({"error": "order_not_found"}, status_code=404)
        return {"content": {"id": order_id, "status": "CREATED"}}

    @app.post("/api/events", status_code=202)
    async def events():
        return {"accepted": True}

    return app


app = create_app()


# Run with: uvicorn mock_service.app:app --port 8080 --reload

"""Request logging and per-caller rate limits for money-moving endpoints."""

import logging
import time
import uuid

from fastapi import Request, Response
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import redis.asyncio as redis

from loc3w.config import settings
from loc3w.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        level = logging.WARNING if duration > settings.slow_request_seconds else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration:.3f}s) [{request_id}]",
        )
        return response


def caller_identity(request: Request) -> str:
    """User id from the bearer token, or the client address for anonymous calls.

    The token is only decoded here, not trusted: authentication still happens
    in the route's dependencies.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError:
            claims = {}
        if claims.get("sub"):
            return f"user:{claims['sub']}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimiter:
    """Fixed-window counter in Redis, keyed on the caller and optionally a booking.

    Used as a route dependency. When Redis is unreachable requests are let
    through and a warning is logged.
    """

    def __init__(
        self,
        key_prefix: str,
        limit: int,
        window_seconds: int | None = None,
        per_booking: bool = False,
        client: redis.Redis | None = None,
    ):
        self.key_prefix = key_prefix
        self.limit = limit
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.per_booking = per_booking
        self._redis = client

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(settings.redis_url, decode_responses=True)
        return self._redis

    def key_for(self, request: Request) -> str:
        key = f"rate:{self.key_prefix}:{caller_identity(request)}"
        if self.per_booking:
            booking_id = request.path_params.get("booking_id")
            if booking_id:
                key = f"{key}:booking:{booking_id}"
        return key

    async def __call__(self, request: Request) -> None:
        key = self.key_for(request)
        try:
            client = self._client()
            count = await client.incr(key)
            if count == 1:
                await client.expire(key, self.window_seconds)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter {self.key_prefix} unavailable: {e}")
            return

        if count > self.limit:
            logger.info(f"Rate limit hit on {key} ({count}/{self.limit})")
            raise RateLimitExceeded()


booking_limiter = RateLimiter("booking", limit=settings.booking_rate_limit)
payment_limiter = RateLimiter("payment", limit=settings.payment_rate_limit, per_booking=True)
recharge_limiter = RateLimiter("recharge", limit=settings.recharge_rate_limit)

"""
Fixed-window rate limiting keyed by client IP.

Counters live in the same backend as the pastes (Redis or the in-memory
fallback). If the backend fails the request is let through.
"""
import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request, Response

from pastebin.database import PasteDatabase
from pastebin.dependencies import get_db
from pastebin.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"


def get_client_ip(request: Request) -> str:
    """Extract client IP from request headers with proxy support.

    Checks X-Forwarded-For and X-Real-IP headers for proxied requests.
    Falls back to direct client host.
    """
    # X-Forwarded-For can be a comma-separated list; the first hop is the client
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


class RateLimiter:
    """FastAPI dependency enforcing ``limit`` requests per ``window_seconds``."""

    def __init__(self, scope: str, limit: int, window_seconds: int, message: str):
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message

    async def __call__(
        self,
        request: Request,
        response: Response,
        db: PasteDatabase = Depends(get_db),
    ) -> None:
        client_ip = get_client_ip(request)
        key = f"{KEY_PREFIX}:{self.scope}:{client_ip}"
        try:
            count, ttl = db.increment_window(key, self.window_seconds)
        except Exception as exc:
            logger.warning(f"Rate limiter failed for {self.scope}:{client_ip} - {exc}", exc_info=True)
            return

        remaining = max(self.limit - count, 0)
        reset_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(reset_at.timestamp())),
        }

        if count > self.limit:
            logger.warning(
                f"Rate limit exceeded for IP {client_ip} on {self.scope} "
                f"(limit: {self.limit}/{self.window_seconds}s)"
            )
            raise RateLimitExceeded(self.message, headers={**headers, "Retry-After": str(ttl)})

        response.headers.update(headers)


# 1000 requests per 15 minutes across the API
global_limiter = RateLimiter(
    "global", 1000, 15 * 60, "Too many requests. Please try again later."
)

# 10 pastes per minute
create_paste_limiter = RateLimiter(
    "create", 10, 60, "Too many pastes created. Please wait before creating more."
)

# 100 reads per minute
get_paste_limiter = RateLimiter(
    "read", 100, 60, "Too many requests. Please slow down."
)

# 10 cleanup calls per hour
cleanup_limiter = RateLimiter(
    "cleanup", 10, 60 * 60, "Cleanup rate limit exceeded."
)

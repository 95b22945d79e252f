"""
Shared FastAPI dependencies: store handle, request clock, cleanup auth.
"""
import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Header, Request

from pastebin.config import settings
from pastebin.database import PasteDatabase
from pastebin.errors import InternalError, Unauthorized

logger = logging.getLogger(__name__)


def get_db(request: Request) -> PasteDatabase:
    """The store handle owned by the running application."""
    return request.app.state.db


def get_current_time(x_test_now_ms: Optional[str] = Header(None)) -> datetime:
    """
    Get current time, respecting TEST_MODE for deterministic testing.

    Args:
        x_test_now_ms: Test timestamp header (milliseconds since epoch)

    Returns:
        Current datetime in UTC
    """
    if settings.TEST_MODE and x_test_now_ms:
        try:
            # Convert milliseconds to seconds
            timestamp_ms = int(x_test_now_ms)
            return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning(f"Invalid x-test-now-ms header: {e}")

    return datetime.now(timezone.utc)


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Require ``Authorization: Bearer <CRON_SECRET>`` on cleanup endpoints.

    Outside production the check is skipped when no secret is configured.

    Raises:
        InternalError: In production when no secret is configured
        Unauthorized: If the header is missing or wrong
    """
    cron_secret = settings.CRON_SECRET

    if not cron_secret and not settings.is_production:
        logger.info("Skipping cron auth in development mode")
        return

    if not cron_secret:
        logger.error("CRON_SECRET not configured")
        raise InternalError("Server misconfiguration")

    expected = f"Bearer {cron_secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("Rejected cleanup request with invalid authorization")
        raise Unauthorized("Invalid or missing authorization")

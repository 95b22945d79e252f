"""
Expiration logic for pastes.

A paste is expired when its stored flag is set, when its expiry time has
passed, or when its view count has reached the view ceiling. The stored flag
only caches the last two; the computed state is always authoritative.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

TIME_LIMIT_REASON = "This paste has expired due to time limit"
VIEW_LIMIT_REASON = "This paste has expired due to view limit"
DELETED_REASON = "This paste has been deleted"


@dataclass(frozen=True)
class ExpirationStatus:
    expired: bool
    reason: Optional[str] = None


def is_time_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and expires_at <= now


def is_view_expired(view_count: int, max_views: Optional[int]) -> bool:
    return max_views is not None and view_count >= max_views


def evaluate(
    is_expired: bool,
    expires_at: Optional[datetime],
    view_count: int,
    max_views: Optional[int],
    now: datetime,
) -> ExpirationStatus:
    """
    Decide whether a paste is expired and why.

    Args:
        is_expired: Persisted expiry flag
        expires_at: Absolute expiry time, or None for no time limit
        view_count: Views served so far
        max_views: View ceiling, or None for unlimited
        now: Reference time

    Returns:
        ExpirationStatus with a human-readable reason when expired
    """
    time_expired = is_time_expired(expires_at, now)
    view_expired = is_view_expired(view_count, max_views)

    if not (is_expired or time_expired or view_expired):
        return ExpirationStatus(expired=False)

    # The reason is re-derived from current values, not stored
    if time_expired:
        return ExpirationStatus(expired=True, reason=TIME_LIMIT_REASON)
    if view_expired:
        return ExpirationStatus(expired=True, reason=VIEW_LIMIT_REASON)
    return ExpirationStatus(expired=True, reason=DELETED_REASON)


def evaluate_paste(paste, now: datetime) -> ExpirationStatus:
    """Evaluate expiry for any record exposing the four expiry fields."""
    return evaluate(
        paste.is_expired,
        paste.expires_at,
        paste.view_count,
        paste.max_views,
        now,
    )


def calculate_expires_at(
    expires_in_minutes: Optional[int], now: datetime
) -> Optional[datetime]:
    """Absolute expiry time; None when no (or a non-positive) duration is given."""
    if not expires_in_minutes or expires_in_minutes <= 0:
        return None
    return now + timedelta(minutes=expires_in_minutes)


def calculate_remaining_views(view_count: int, max_views: Optional[int]) -> Optional[int]:
    if max_views is None:
        return None
    return max(0, max_views - view_count)

"""
Cleanup routes for scheduled maintenance.

Meant to be called by a cron job with ``Authorization: Bearer <CRON_SECRET>``:
flag expired pastes, purge old expired pastes, and report statistics.
"""
import logging
import time
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from pastebin.config import settings
from pastebin.database import PasteDatabase
from pastebin.dependencies import get_current_time, get_db, verify_cron_secret
from pastebin.errors import InternalError, StorageError
from pastebin.models import (
    ApiResponse,
    CleanedCounts,
    CleanupReport,
    CleanupStatistics,
    ExpirationTypes,
    LanguageCount,
    PurgeReport,
    StatsReport,
    StatsTotals,
)
from pastebin.ratelimit import cleanup_limiter

router = APIRouter()
logger = logging.getLogger(__name__)


def _elapsed(started: float) -> str:
    return f"{round((time.perf_counter() - started) * 1000)}ms"


def _failure(message: str, error: Exception) -> InternalError:
    logger.error(f"{message}: {error}", exc_info=True)
    details = None if settings.is_production else str(error)
    return InternalError(message, details=details)


@router.get(
    "/api/cleanup",
    response_model=ApiResponse[CleanupReport],
    dependencies=[Depends(cleanup_limiter), Depends(verify_cron_secret)],
)
async def run_cleanup(
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
) -> ApiResponse[CleanupReport]:
    """Flag every paste that has run past its time or view limit."""
    started = time.perf_counter()
    try:
        swept = db.sweep_expired(now)
        summary = db.cleanup_summary()
    except StorageError as e:
        raise _failure("Cleanup failed", e) from e

    return ApiResponse[CleanupReport](
        data=CleanupReport(
            timestamp=now,
            duration=_elapsed(started),
            cleaned=CleanedCounts(
                time_expired=swept.time_expired,
                view_expired=swept.view_expired,
                total=swept.total,
            ),
            statistics=CleanupStatistics(
                total_expired=summary.total_expired,
                total_active=summary.total_active,
                oldest_active_date=summary.oldest_active,
            ),
        )
    )


@router.post(
    "/api/cleanup/purge",
    response_model=ApiResponse[PurgeReport],
    dependencies=[Depends(cleanup_limiter), Depends(verify_cron_secret)],
)
async def purge_expired(
    retention_days: int = Query(settings.PURGE_RETENTION_DAYS, ge=0, alias="retentionDays"),
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
) -> ApiResponse[PurgeReport]:
    """Permanently delete expired pastes older than ``retentionDays`` days."""
    started = time.perf_counter()
    try:
        result = db.purge(retention_days, now)
    except StorageError as e:
        raise _failure("Purge failed", e) from e

    return ApiResponse[PurgeReport](
        data=PurgeReport(
            timestamp=now,
            duration=_elapsed(started),
            retention_days=retention_days,
            cutoff_date=result.cutoff,
            purged=result.purged,
        )
    )


@router.get(
    "/api/cleanup/stats",
    response_model=ApiResponse[StatsReport],
    dependencies=[Depends(verify_cron_secret)],
)
async def get_stats(
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
) -> ApiResponse[StatsReport]:
    try:
        stats = db.stats(now)
    except StorageError as e:
        raise _failure("Failed to get statistics", e) from e

    return ApiResponse[StatsReport](
        data=StatsReport(
            timestamp=now,
            totals=StatsTotals(
                pastes=stats.total,
                active=stats.active,
                expired=stats.expired,
                total_views=stats.total_views,
            ),
            expiration_types=ExpirationTypes(
                with_time_expiry=stats.with_time_expiry,
                with_view_limit=stats.with_view_limit,
                no_expiry=stats.no_expiry,
            ),
            top_languages=[
                LanguageCount(language=language, count=count)
                for language, count in stats.top_languages
            ],
        )
    )

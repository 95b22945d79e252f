"""
Paste routes.
Handles create, fetch (JSON) and raw (plain text) operations.
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Path
from fastapi.responses import PlainTextResponse

from pastebin.config import settings
from pastebin.database import Paste, PasteDatabase
from pastebin.dependencies import get_current_time, get_db
from pastebin.errors import (
    Expired,
    InternalError,
    NotFound,
    PasteConflictError,
    PasteExpiredError,
    PasteNotFoundError,
    StorageError,
    ValidationFailed,
)
from pastebin.expiration import calculate_expires_at, calculate_remaining_views
from pastebin.ids import generate_paste_id
from pastebin.models import (
    PASTE_ID_PATTERN,
    ApiResponse,
    PasteCreate,
    PasteCreated,
    PasteView,
    is_valid_paste_id,
)
from pastebin.ratelimit import create_paste_limiter, get_paste_limiter

router = APIRouter()
logger = logging.getLogger(__name__)

# IDs are random; a collision is retried with a fresh one
MAX_ID_ATTEMPTS = 3


def paste_url(paste_id: str) -> str:
    base_url = settings.APP_DOMAIN.rstrip("/")
    return f"{base_url}/api/pastes/{paste_id}"


def _to_view(paste: Paste) -> PasteView:
    return PasteView(
        id=paste.id,
        content=paste.content,
        language=paste.language,
        created_at=paste.created_at,
        expires_at=paste.expires_at,
        view_count=paste.view_count,
        max_views=paste.max_views,
        remaining_views=calculate_remaining_views(paste.view_count, paste.max_views),
        is_expired=paste.is_expired,
    )


@router.post(
    "/api/pastes",
    response_model=ApiResponse[PasteCreated],
    status_code=201,
    dependencies=[Depends(create_paste_limiter)],
)
async def create_paste(
    paste: PasteCreate,
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
) -> ApiResponse[PasteCreated]:
    """
    Create a new paste.

    Args:
        paste: Paste data (content, optional language, expiresIn, maxViews)
        db: Paste store
        now: Request time

    Returns:
        Paste ID, URL and expiry settings

    Raises:
        InternalError: If the paste could not be stored
    """
    expires_at = calculate_expires_at(paste.expires_in, now)

    created = None
    try:
        for _ in range(MAX_ID_ATTEMPTS):
            paste_id = generate_paste_id()
            try:
                created = db.create_paste(
                    paste_id=paste_id,
                    content=paste.content,
                    language=paste.language,
                    expires_at=expires_at,
                    max_views=paste.max_views,
                    now=now,
                )
                break
            except PasteConflictError:
                logger.warning(f"Paste ID collision on {paste_id}, retrying")
    except StorageError as e:
        logger.error(f"Error creating paste: {e}")
        raise InternalError("Failed to create paste") from e

    if created is None:
        logger.error(f"No free paste ID after {MAX_ID_ATTEMPTS} attempts")
        raise InternalError("Failed to create paste")

    return ApiResponse[PasteCreated](
        data=PasteCreated(
            id=created.id,
            url=paste_url(created.id),
            expires_at=created.expires_at,
            max_views=created.max_views,
            created_at=created.created_at,
        )
    )


@router.get(
    "/api/pastes/{paste_id}",
    response_model=ApiResponse[PasteView],
    dependencies=[Depends(get_paste_limiter)],
)
async def fetch_paste(
    paste_id: str = Path(..., min_length=1, max_length=20, pattern=PASTE_ID_PATTERN),
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
) -> ApiResponse[PasteView]:
    """
    Fetch a paste (API endpoint).
    Each successful fetch increments the view count.

    Raises:
        NotFound: If the paste does not exist (404)
        Expired: If the paste is past its time or view limit (410)
        InternalError: If the store fails (500)
    """
    try:
        paste = db.fetch_and_view(paste_id, now)
    except PasteNotFoundError:
        raise NotFound("Paste not found")
    except PasteExpiredError as e:
        raise Expired(e.reason or "This paste has expired")
    except StorageError as e:
        logger.error(f"Error retrieving paste {paste_id}: {e}")
        raise InternalError("Failed to retrieve paste") from e

    return ApiResponse[PasteView](data=_to_view(paste))


@router.get(
    "/api/pastes/{paste_id}/raw",
    response_class=PlainTextResponse,
    dependencies=[Depends(get_paste_limiter)],
)
async def fetch_raw_paste(
    paste_id: str,
    db: PasteDatabase = Depends(get_db),
    now: datetime = Depends(get_current_time),
):
    """
    Fetch only the paste content as plain text.
    Counts a view like the JSON endpoint; failures are plain text too.
    """
    if not is_valid_paste_id(paste_id):
        return PlainTextResponse("Invalid paste ID", status_code=400)

    try:
        paste = db.fetch_and_view(paste_id, now)
    except PasteNotFoundError:
        return PlainTextResponse("Paste not found", status_code=404)
    except PasteExpiredError:
        return PlainTextResponse("Paste has expired", status_code=410)
    except Exception as e:
        logger.error(f"Error retrieving raw paste {paste_id}: {e}", exc_info=True)
        return PlainTextResponse("Internal server error", status_code=500)

    return paste.content


# Ids containing "/" (sent encoded as %2F) never match the routes above.
# These catch them so a malformed id is still a 400 and not a missing route.
@router.get(
    "/api/pastes/{paste_id:path}/raw",
    response_class=PlainTextResponse,
    dependencies=[Depends(get_paste_limiter)],
    include_in_schema=False,
)
async def reject_raw_paste_path(paste_id: str):
    logger.warning(f"Rejected malformed raw paste ID {paste_id!r}")
    return PlainTextResponse("Invalid paste ID", status_code=400)


@router.get(
    "/api/pastes/{paste_id:path}",
    dependencies=[Depends(get_paste_limiter)],
    include_in_schema=False,
)
async def reject_paste_path(paste_id: str):
    logger.warning(f"Rejected malformed paste ID {paste_id!r}")
    raise ValidationFailed(
        "Invalid request data",
        details=[{"field": "paste_id", "message": "Invalid paste ID"}],
    )

"""
Database layer for Redis operations with in-memory fallback for development.
Handles paste CRUD, view counting, expiry sweeps, purges, statistics and
health checks.

Each paste is a hash at ``paste:{id}``; every ID is also recorded in the
``pastes:index`` set so bulk operations can walk all pastes.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from redis import Redis
from redis.exceptions import ConnectionError, RedisError

from pastebin.errors import (
    PasteConflictError,
    PasteExpiredError,
    PasteNotFoundError,
    StorageError,
)
from pastebin.expiration import (
    evaluate_paste,
    is_time_expired,
    is_view_expired,
)

logger = logging.getLogger(__name__)

INDEX_KEY = "pastes:index"
UNKNOWN_LANGUAGE = "plain text"
TOP_LANGUAGES = 10

# Record a view in one step: refuse when the paste is flagged or its ceiling
# is already reached, otherwise increment and flag on reaching the ceiling.
# Returns the new view count, -1 when refused, -2 when the paste is gone.
RECORD_VIEW_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return -2
end
if redis.call('HGET', KEYS[1], 'is_expired') == '1' then
  return -1
end
local max_views = redis.call('HGET', KEYS[1], 'max_views')
local views = tonumber(redis.call('HGET', KEYS[1], 'view_count') or '0')
if max_views and views >= tonumber(max_views) then
  return -1
end
views = redis.call('HINCRBY', KEYS[1], 'view_count', 1)
if max_views and views >= tonumber(max_views) then
  redis.call('HSET', KEYS[1], 'is_expired', '1')
end
return views
"""

# Set the flag only on a paste that still exists, so a concurrent purge
# cannot leave a hash holding nothing but the flag.
MARK_EXPIRED_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
redis.call('HSET', KEYS[1], 'is_expired', '1')
return 1
"""


def _paste_key(paste_id: str) -> str:
    return f"paste:{paste_id}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Paste:
    """A stored paste."""

    id: str
    content: str
    created_at: datetime
    language: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    view_count: int = 0
    is_expired: bool = False

    def to_hash(self) -> Dict[str, str]:
        data = {
            "id": self.id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "view_count": str(self.view_count),
            "is_expired": "1" if self.is_expired else "0",
        }
        # Optional fields are left out entirely when unset
        if self.language is not None:
            data["language"] = self.language
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at.isoformat()
        if self.max_views is not None:
            data["max_views"] = str(self.max_views)
        return data

    @classmethod
    def from_hash(cls, data: Dict[str, Any]) -> "Paste":
        expires_at = data.get("expires_at")
        max_views = data.get("max_views")
        return cls(
            id=data["id"],
            content=data["content"],
            created_at=datetime.fromisoformat(data["created_at"]),
            language=data.get("language") or None,
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            max_views=int(max_views) if max_views else None,
            view_count=int(data.get("view_count", 0)),
            is_expired=data.get("is_expired") == "1",
        )


@dataclass(frozen=True)
class SweepResult:
    time_expired: int = 0
    view_expired: int = 0

    @property
    def total(self) -> int:
        return self.time_expired + self.view_expired


@dataclass(frozen=True)
class PurgeResult:
    purged: int
    cutoff: datetime


@dataclass(frozen=True)
class CleanupSummary:
    total_expired: int
    total_active: int
    oldest_active: Optional[datetime]


@dataclass
class PasteStats:
    total: int = 0
    active: int = 0
    expired: int = 0
    total_views: int = 0
    with_time_expiry: int = 0
    with_view_limit: int = 0
    no_expiry: int = 0
    top_languages: List[Tuple[str, int]] = field(default_factory=list)


class InMemoryStore:
    """Simple in-memory store for development/testing (when Redis unavailable).

    Mirrors the subset of the Redis API the service uses, with string values
    as returned by a ``decode_responses=True`` client. Operations run to
    completion without yielding, so each call is atomic on the event loop.
    """

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.ttl_timestamps: Dict[str, float] = {}

    def _expire_if_due(self, key: str):
        deadline = self.ttl_timestamps.get(key)
        if deadline is not None and _now().timestamp() >= deadline:
            self.store.pop(key, None)
            del self.ttl_timestamps[key]

    def _hash(self, key: str) -> Dict[str, str]:
        self._expire_if_due(key)
        return self.store.setdefault(key, {})

    def hset(
        self,
        key: str,
        hash_field: Optional[str] = None,
        value: Any = None,
        mapping: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Store hash fields."""
        items = dict(mapping or {})
        if hash_field is not None:
            items[hash_field] = value
        data = self._hash(key)
        added = sum(1 for name in items if name not in data)
        data.update({name: str(val) for name, val in items.items()})
        return added

    def hsetnx(self, key: str, hash_field: str, value: Any) -> int:
        data = self._hash(key)
        if hash_field in data:
            return 0
        data[hash_field] = str(value)
        return 1

    def hgetall(self, key: str) -> Dict[str, str]:
        """Retrieve hash data."""
        self._expire_if_due(key)
        return dict(self.store.get(key, {}))

    def exists(self, key: str) -> int:
        self._expire_if_due(key)
        return 1 if key in self.store else 0

    def delete(self, *keys: str) -> int:
        """Delete keys."""
        removed = 0
        for key in keys:
            self._expire_if_due(key)
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttl_timestamps.pop(key, None)
        return removed

    def sadd(self, key: str, *members: str) -> int:
        members_set: Set[str] = self.store.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    def srem(self, key: str, *members: str) -> int:
        members_set: Set[str] = self.store.get(key, set())
        before = len(members_set)
        members_set.difference_update(members)
        return before - len(members_set)

    def smembers(self, key: str) -> Set[str]:
        return set(self.store.get(key, set()))

    def incr(self, key: str, amount: int = 1) -> int:
        self._expire_if_due(key)
        value = int(self.store.get(key, 0)) + amount
        self.store[key] = value
        return value

    def expire(self, key: str, seconds: int):
        """Set expiry time in seconds."""
        self.ttl_timestamps[key] = _now().timestamp() + seconds

    def ttl(self, key: str) -> int:
        self._expire_if_due(key)
        if key not in self.store:
            return -2
        deadline = self.ttl_timestamps.get(key)
        if deadline is None:
            return -1
        return max(int(deadline - _now().timestamp()), 0)

    def record_view(self, key: str) -> int:
        """Same contract as RECORD_VIEW_SCRIPT."""
        self._expire_if_due(key)
        data = self.store.get(key)
        if not data:
            return -2
        if data.get("is_expired") == "1":
            return -1
        max_views = data.get("max_views")
        views = int(data.get("view_count", 0))
        if max_views and views >= int(max_views):
            return -1
        views += 1
        data["view_count"] = str(views)
        if max_views and views >= int(max_views):
            data["is_expired"] = "1"
        return views

    def mark_expired(self, key: str) -> int:
        """Same contract as MARK_EXPIRED_SCRIPT."""
        self._expire_if_due(key)
        data = self.store.get(key)
        if not data:
            return 0
        data["is_expired"] = "1"
        return 1

    def ping(self):
        """Health check."""
        return True

    def close(self):
        pass


class PasteDatabase:
    """Paste store on top of Redis (or the in-memory fallback).

    The handle is created unconnected; call ``open()`` before use and
    ``close()`` on shutdown. Passing ``client`` uses that client as-is.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Any = None):
        self.redis_url = redis_url
        self.redis: Any = None
        self.using_fallback = False
        self._record_view_script = None
        self._mark_expired_script = None
        if client is not None:
            self._use(client)

    def _use(self, client: Any):
        self.redis = client
        self.using_fallback = isinstance(client, InMemoryStore)
        if not self.using_fallback:
            self._record_view_script = client.register_script(RECORD_VIEW_SCRIPT)
            self._mark_expired_script = client.register_script(MARK_EXPIRED_SCRIPT)

    def open(self):
        """Connect to Redis, falling back to the in-memory store."""
        if self.redis is not None:
            return
        try:
            logger.info(f"Attempting to connect to Redis: {(self.redis_url or '')[:30]}...")
            client = Redis.from_url(self.redis_url, decode_responses=True)
            # Test connection
            client.ping()
            self._use(client)
            logger.info("✓ Redis connected successfully")
        except ConnectionError as e:
            logger.error(f"❌ ConnectionError connecting to Redis: {type(e).__name__}: {str(e)}")
            logger.warning("Using in-memory fallback. Data will NOT persist across restarts.")
            self._use(InMemoryStore())
        except Exception as e:
            logger.error(f"❌ Unexpected error connecting to Redis: {type(e).__name__}: {str(e)}")
            logger.warning("Using in-memory fallback. Data will NOT persist across restarts.")
            self._use(InMemoryStore())

    def close(self):
        """Release the backend connection."""
        if self.redis is None:
            return
        try:
            self.redis.close()
            logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error disconnecting from database: {e}")
        finally:
            self.redis = None
            self._record_view_script = None
            self._mark_expired_script = None

    def is_healthy(self) -> bool:
        """Check if database connection is alive."""
        if self.redis is None:
            return False
        try:
            self.redis.ping()
            return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
        return False

    def create_paste(
        self,
        paste_id: str,
        content: str,
        language: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Paste:
        """
        Save a new paste.

        Args:
            paste_id: Unique paste identifier
            content: Text content of the paste
            language: Optional normalized language tag
            expires_at: Optional absolute expiry time
            max_views: Optional maximum view count
            now: Creation time (defaults to the current time)

        Returns:
            The stored paste

        Raises:
            PasteConflictError: If the ID is already taken
            StorageError: If the backend fails
        """
        paste = Paste(
            id=paste_id,
            content=content,
            created_at=now or _now(),
            language=language,
            expires_at=expires_at,
            max_views=max_views,
        )
        key = _paste_key(paste_id)
        try:
            # Reserve the ID first so two writers can never share it
            reserved = self.redis.hsetnx(key, "id", paste_id)
        except RedisError as e:
            logger.error(f"Error reserving paste ID {paste_id}: {e}")
            raise StorageError(f"Failed to save paste {paste_id}") from e
        if not reserved:
            raise PasteConflictError(paste_id)

        try:
            self.redis.hset(key, mapping=paste.to_hash())
            self.redis.sadd(INDEX_KEY, paste_id)
        except RedisError as e:
            logger.error(f"Error saving paste {paste_id}: {e}")
            # An unindexed hash is never swept or purged
            self._release(key)
            raise StorageError(f"Failed to save paste {paste_id}") from e

        logger.info(f"Paste {paste_id} saved successfully")
        return paste

    def _release(self, key: str):
        try:
            self.redis.delete(key)
        except RedisError as e:
            logger.error(f"Error releasing {key} after failed save: {e}")

    def get_paste(self, paste_id: str) -> Optional[Paste]:
        """
        Fetch a paste without counting a view.

        Returns:
            The paste, or None if it does not exist
        """
        try:
            data = self.redis.hgetall(_paste_key(paste_id))
        except RedisError as e:
            logger.error(f"Error fetching paste {paste_id}: {e}")
            raise StorageError(f"Failed to fetch paste {paste_id}") from e

        # A hash holding only the reserved ID is still being written
        if not data or "content" not in data:
            return None
        return Paste.from_hash(data)

    def fetch_and_view(self, paste_id: str, now: Optional[datetime] = None) -> Paste:
        """
        Fetch a paste and count one view.

        An expired paste is flagged and rejected without counting a view.
        The view that reaches the view ceiling is still served.

        Returns:
            The paste with its incremented view count

        Raises:
            PasteNotFoundError: If the paste does not exist
            PasteExpiredError: If the paste is expired
            StorageError: If the backend fails
        """
        now = now or _now()
        paste = self.get_paste(paste_id)
        if paste is None:
            logger.warning(f"Paste {paste_id} not found")
            raise PasteNotFoundError(paste_id)

        status = evaluate_paste(paste, now)
        if status.expired:
            logger.warning(f"Paste {paste_id} is expired: {status.reason}")
            if not paste.is_expired:
                self.mark_expired(paste_id)
            raise PasteExpiredError(paste_id, status.reason)

        views = self._record_view(paste_id)
        if views == -2:
            raise PasteNotFoundError(paste_id)
        if views == -1:
            # Another reader took the last view, or a sweep flagged it
            current = self.get_paste(paste_id) or paste
            reason = evaluate_paste(replace(current, is_expired=True), now).reason
            raise PasteExpiredError(paste_id, reason)

        logger.info(f"View count incremented for paste {paste_id}")
        return replace(
            paste,
            view_count=views,
            is_expired=is_view_expired(views, paste.max_views),
        )

    def _record_view(self, paste_id: str) -> int:
        key = _paste_key(paste_id)
        try:
            if self.using_fallback:
                return self.redis.record_view(key)
            return int(self._record_view_script(keys=[key]))
        except RedisError as e:
            logger.error(f"Error incrementing views for {paste_id}: {e}")
            raise StorageError(f"Failed to record view for {paste_id}") from e

    def mark_expired(self, paste_id: str) -> bool:
        """
        Flag a paste as expired. Idempotent.

        Returns:
            True if the paste exists
        """
        key = _paste_key(paste_id)
        try:
            if self.using_fallback:
                marked = self.redis.mark_expired(key)
            else:
                marked = self._mark_expired_script(keys=[key])
            if not marked:
                return False
        except RedisError as e:
            logger.error(f"Error marking paste {paste_id} expired: {e}")
            raise StorageError(f"Failed to expire paste {paste_id}") from e

        logger.info(f"Paste {paste_id} marked expired")
        return True

    def iter_pastes(self):
        """Yield every indexed paste, dropping index entries with no paste."""
        try:
            paste_ids = sorted(self.redis.smembers(INDEX_KEY))
        except RedisError as e:
            logger.error(f"Error reading paste index: {e}")
            raise StorageError("Failed to read paste index") from e

        for paste_id in paste_ids:
            paste = self.get_paste(paste_id)
            if paste is None:
                self._unindex(paste_id)
                continue
            yield paste

    def _unindex(self, paste_id: str):
        try:
            self.redis.srem(INDEX_KEY, paste_id)
        except RedisError as e:
            raise StorageError(f"Failed to unindex paste {paste_id}") from e

    def sweep_expired(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Flag every unflagged paste that is past its time or view limit.

        A paste over both limits counts as time-expired.
        """
        now = now or _now()
        time_expired = 0
        view_expired = 0
        for paste in self.iter_pastes():
            if paste.is_expired:
                continue
            if is_time_expired(paste.expires_at, now):
                time_expired += 1
            elif is_view_expired(paste.view_count, paste.max_views):
                view_expired += 1
            else:
                continue
            self.mark_expired(paste.id)

        result = SweepResult(time_expired=time_expired, view_expired=view_expired)
        logger.info(
            f"Sweep flagged {result.total} pastes "
            f"({time_expired} by time, {view_expired} by views)"
        )
        return result

    def purge(self, retention_days: int, now: Optional[datetime] = None) -> PurgeResult:
        """
        Permanently delete flagged pastes created at or before the cutoff.

        Unflagged pastes are never deleted, however old.
        """
        now = now or _now()
        cutoff = now - timedelta(days=retention_days)
        purged = 0
        for paste in self.iter_pastes():
            if not paste.is_expired or paste.created_at > cutoff:
                continue
            try:
                self.redis.delete(_paste_key(paste.id))
            except RedisError as e:
                logger.error(f"Error deleting paste {paste.id}: {e}")
                raise StorageError(f"Failed to delete paste {paste.id}") from e
            self._unindex(paste.id)
            purged += 1

        logger.info(f"Purged {purged} expired pastes created before {cutoff.isoformat()}")
        return PurgeResult(purged=purged, cutoff=cutoff)

    def cleanup_summary(self) -> CleanupSummary:
        """Counts by stored flag, plus the oldest unflagged paste."""
        total_expired = 0
        total_active = 0
        oldest_active: Optional[datetime] = None
        for paste in self.iter_pastes():
            if paste.is_expired:
                total_expired += 1
                continue
            total_active += 1
            if oldest_active is None or paste.created_at < oldest_active:
                oldest_active = paste.created_at
        return CleanupSummary(
            total_expired=total_expired,
            total_active=total_active,
            oldest_active=oldest_active,
        )

    def stats(self, now: Optional[datetime] = None) -> PasteStats:
        """Aggregate statistics; active/expired follow the computed expiry state."""
        now = now or _now()
        stats = PasteStats()
        languages: Counter = Counter()
        for paste in self.iter_pastes():
            stats.total += 1
            stats.total_views += paste.view_count
            if evaluate_paste(paste, now).expired:
                stats.expired += 1
            else:
                stats.active += 1
            if paste.expires_at is not None:
                stats.with_time_expiry += 1
            if paste.max_views is not None:
                stats.with_view_limit += 1
            if paste.expires_at is None and paste.max_views is None:
                stats.no_expiry += 1
            languages[paste.language or UNKNOWN_LANGUAGE] += 1

        stats.top_languages = sorted(languages.items(), key=lambda item: (-item[1], item[0]))[
            :TOP_LANGUAGES
        ]
        return stats

    def increment_window(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """
        Count one hit against a fixed-window counter.

        Returns:
            (hits in the current window, seconds until the window resets)
        """
        count = int(self.redis.incr(key))
        ttl = self.redis.ttl(key)
        if ttl is None or ttl < 0:
            self.redis.expire(key, window_seconds)
            ttl = window_seconds
        return count, int(ttl)

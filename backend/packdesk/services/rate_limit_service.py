"""
Request Rate Limiting

Fixed-window counters behind an injected store. The limiter never owns its
state: MemoryRateLimitStore keeps it in one process (tests, single worker),
DatabaseRateLimitStore keeps it in the rate_limit_buckets table so every
worker shares the same counts.

The app holds one RateLimiter in app.extensions["packdesk_rate_limiter"],
built from RATE_LIMIT_BACKEND / ORDER_CREATE_RATE_LIMIT /
ORDER_CREATE_RATE_WINDOW_SECONDS. Order creation is throttled per
(tenant, subject).
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..errors import RateLimitExceeded
from ..models import RateLimitBucket
from .concurrency import lock_for_update, run_with_retry
from .permission_service import AccessContext, log_security_event
from packdesk.time_utils import utcnow

EXTENSION_KEY = "packdesk_rate_limiter"


class RateLimitStore:
    """Counter storage: get / increment / reset."""

    def get(self, key: str) -> int:
        raise NotImplementedError

    def increment(self, key: str, window_seconds: int) -> int:
        """Add one hit to key's current window and return the window's count."""
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError


class MemoryRateLimitStore(RateLimitStore):
    def __init__(self, clock=utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, tuple[int, datetime]] = {}

    def get(self, key):
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket[1] <= self._clock():
                return 0
            return bucket[0]

    def increment(self, key, window_seconds):
        now = self._clock()
        with self._lock:
            for stale in [k for k, (_, expires) in self._buckets.items() if expires <= now]:
                del self._buckets[stale]
            count, reset_at = self._buckets.get(key, (0, now + timedelta(seconds=window_seconds)))
            count += 1
            self._buckets[key] = (count, reset_at)
            return count

    def reset(self, key):
        with self._lock:
            self._buckets.pop(key, None)


class DatabaseRateLimitStore(RateLimitStore):
    """Shared counters in rate_limit_buckets. Each call commits on its own."""

    def __init__(self, clock=utcnow):
        self._clock = clock

    def get(self, key):
        bucket = db.session.query(RateLimitBucket).filter_by(key=key).first()
        if bucket is None or bucket.reset_at <= self._clock():
            return 0
        return bucket.count

    def increment(self, key, window_seconds):
        def _op() -> int:
            now = self._clock()
            bucket = lock_for_update(db.session.query(RateLimitBucket).filter_by(key=key)).first()
            if bucket is None:
                bucket = RateLimitBucket(key=key, count=0, reset_at=now + timedelta(seconds=window_seconds))
                db.session.add(bucket)
            elif bucket.reset_at <= now:
                bucket.count = 0
                bucket.reset_at = now + timedelta(seconds=window_seconds)
            bucket.count += 1
            count = bucket.count
            db.session.commit()
            return count

        return run_with_retry(_op)

    def reset(self, key):
        def _op():
            db.session.query(RateLimitBucket).filter_by(key=key).delete()
            db.session.commit()

        run_with_retry(_op)


class RateLimiter:
    def __init__(self, store: RateLimitStore, limit: int, window_seconds: int):
        if limit < 1 or window_seconds < 1:
            raise ValueError("limit and window_seconds must be positive")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds

    def hit(self, key: str) -> bool:
        """Count one request. False once the window's limit is exceeded."""
        return self.store.increment(key, self.window_seconds) <= self.limit

    def remaining(self, key: str) -> int:
        return max(0, self.limit - self.store.get(key))

    def reset(self, key: str) -> None:
        self.store.reset(key)


def build_rate_limiter(config) -> RateLimiter:
    backend = config.get("RATE_LIMIT_BACKEND", "memory")
    if backend == "database":
        store = DatabaseRateLimitStore()
    elif backend == "memory":
        store = MemoryRateLimitStore()
    else:
        raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend}")
    return RateLimiter(
        store,
        limit=int(config.get("ORDER_CREATE_RATE_LIMIT", 30)),
        window_seconds=int(config.get("ORDER_CREATE_RATE_WINDOW_SECONDS", 60)),
    )


def init_rate_limiter(app, limiter: RateLimiter | None = None) -> RateLimiter:
    limiter = limiter or build_rate_limiter(app.config)
    app.extensions[EXTENSION_KEY] = limiter
    return limiter


def get_rate_limiter() -> RateLimiter:
    return current_app.extensions[EXTENSION_KEY]


def enforce_order_create_limit(ctx: AccessContext) -> None:
    """Count an order creation for (tenant, subject); RateLimitExceeded past the limit."""
    key = f"order_create:{ctx.tenant_id}:{ctx.subject}"
    limiter = get_rate_limiter()
    if limiter.hit(key):
        return

    current_app.logger.warning("Order creation rate limited tenant_id=%s subject=%s", ctx.tenant_id, ctx.subject)
    log_security_event(
        subject=ctx.subject,
        event_type="RATE_LIMITED",
        success=False,
        action="CREATE_ORDER",
        reason=f"More than {limiter.limit} orders in {limiter.window_seconds}s",
        tenant_id=ctx.tenant_id,
    )
    raise RateLimitExceeded(
        "Too many orders created. Please wait and try again.",
        details={"retry_after_seconds": limiter.window_seconds},
    )

"""
Redis service for processed-payment markers.

WHAT LIVES IN REDIS
===================

Only one thing: "payment <id> has already been reconciled".

Why:
  The processor delivers notifications at least once, often several times
  per payment (created, updated, IPN and webhook variants). Every delivery
  without inline metadata costs a round-trip to the processor's payment API
  before the ledger update can be attempted. A marker written after a
  successful reconciliation lets repeat deliveries short-circuit.

Why NOT slot state:
  Slot availability must reflect the ledger's committed state at read time.
  Any cache in front of it is a window for a double booking.

Correctness never depends on Redis: the conditional ledger update is
already idempotent. On any Redis failure the marker check "fails open"
(reports not-seen) and reconciliation proceeds against the database.
"""

from typing import Optional

import redis.asyncio as redis
from enrollment.core.config import get_settings
from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_payment_marker

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None

PAYMENT_MARKER_PREFIX = "payments:processed:"


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def _make_payment_key(payment_id: str) -> str:
    return f"{PAYMENT_MARKER_PREFIX}{payment_id}"


class RedisPaymentMarkers:
    """Processed-payment markers with TTL. All failures fail open."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._ttl = ttl_seconds or settings.REDIS_PAYMENT_MARKER_TTL

    async def seen(self, payment_id: str) -> bool:
        client = await get_redis()
        if not client:
            return False

        key = _make_payment_key(payment_id)
        try:
            hit = bool(await client.exists(key))
        except Exception as e:
            record_payment_marker("error")
            logger.error("payment_marker_get_error", key=key, error=str(e))
            return False

        record_payment_marker("hit" if hit else "miss")
        return hit

    async def mark(self, payment_id: str) -> None:
        client = await get_redis()
        if not client:
            return

        key = _make_payment_key(payment_id)
        try:
            await client.setex(key, self._ttl, "1")
            logger.debug("payment_marker_set", key=key, ttl=self._ttl)
        except Exception as e:
            logger.error("payment_marker_set_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        markers = 0
        async for _ in client.scan_iter(match=f"{PAYMENT_MARKER_PREFIX}*", count=100):
            markers += 1
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "payment_markers": markers,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}

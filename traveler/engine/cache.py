"""
Traveler Redis Cache Layer: backing store for web sessions.

The ticket authenticator reads and mutates a plain session dict
(userid, username, memberOf, roles, landing). ``SessionStore`` persists those
dicts as JSON in Redis with the configured session timeout.

All Redis data is ephemeral; a lost session only forces a new SSO round trip.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

logger = logging.getLogger("traveler.engine.cache")


class RedisCache:
    """
    Redis cache wrapper with JSON helpers and a circuit breaker.

    Falls back to "cache miss" on Redis failure instead of raising, so a
    Redis outage degrades to re-authentication rather than errors.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "traveler:",
        default_ttl: int = 300,
        db: int = 0,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._db = db
        self._client = None
        self._available = False

        # Circuit breaker state
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # seconds
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        """Initialize Redis connection."""
        try:
            import redis
            self._client = redis.Redis.from_url(
                self._redis_url,
                db=self._db,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info(f"Redis connected: DB {self._db} ({self._prefix})")
            return True
        except Exception as e:
            logger.warning(f"Redis connection failed (DB {self._db}): {e}")
            self._available = False
            return False

    def use_client(self, client: Any) -> None:
        """Attach an already-constructed client (shared pools, tests)."""
        self._client = client
        self._available = True
        self._circuit_open = False
        self._failure_count = 0

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            # Try to recover after window
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now

        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # ── Core Operations ──

    def get(self, key: str) -> Optional[str]:
        """Get a value from cache. Returns None on miss or failure."""
        if not self._check_circuit():
            return None
        try:
            return self._client.get(self._make_key(key))
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value with optional TTL. Returns False on failure."""
        if not self._check_circuit():
            return False
        try:
            self._client.set(
                self._make_key(key),
                value,
                ex=ttl or self._default_ttl,
            )
            return True
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis SET failed: {e}")
            return False

    def delete(self, key: str) -> bool:
        if not self._check_circuit():
            return False
        try:
            self._client.delete(self._make_key(key))
            return True
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis DELETE failed: {e}")
            return False

    # ── JSON Operations ──

    def get_json(self, key: str) -> Optional[Any]:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            return self.set(key, json.dumps(value, default=str), ttl=ttl)
        except (TypeError, ValueError):
            return False

    # ── Health & Management ──

    def ping(self) -> bool:
        if not self._client:
            return False
        try:
            return self._client.ping()
        except Exception:
            return False

    def close(self) -> None:
        """Close the Redis connection and release resources."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Redis close failed: {e}")
            self._client = None
        self._available = False
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


# ---------------------------------------------------------------------------
# Session Store
# ---------------------------------------------------------------------------

class SessionStore:
    """
    Session dicts keyed by session id.

    Key format: traveler:session:{session_id}
    TTL: security.session_timeout, refreshed on every save.
    """

    def __init__(self, cache: RedisCache, ttl: int = 3600):
        self._cache = cache
        self._ttl = ttl

    @staticmethod
    def new_session_id() -> str:
        return f"sess_{uuid.uuid4().hex}"

    def load(self, session_id: str) -> Dict[str, Any]:
        """Return the stored session, or an empty dict for unknown ids."""
        if not session_id:
            return {}
        data = self._cache.get_json(session_id)
        return data if isinstance(data, dict) else {}

    def save(self, session_id: str, data: Dict[str, Any]) -> bool:
        return self._cache.set_json(session_id, data, ttl=self._ttl)

    def destroy(self, session_id: str) -> bool:
        removed = self._cache.delete(session_id)
        logger.info(f"Session destroyed: {session_id[:16]}...")
        return removed

    def close(self) -> None:
        self._cache.close()

    @property
    def is_available(self) -> bool:
        return self._cache.is_available


def create_session_store(redis_url: str, db: int = 4, ttl: int = 3600) -> SessionStore:
    """Create the session store (Redis DB 4 by default)."""
    cache = RedisCache(redis_url=redis_url, prefix="traveler:session:", default_ttl=ttl, db=db)
    cache.connect()
    return SessionStore(cache, ttl=ttl)

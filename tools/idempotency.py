import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

import redis
from loguru import logger

RETENTION_SECONDS = 3600


class Idem:
    """Idempotency guard remembering purchase event ids for one hour.

    In-memory by default. When a Redis URL is given the ids live in Redis
    instead, which lets several workers share them.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl: int = RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._expires_at: "OrderedDict[str, float]" = OrderedDict()
        self.r = None

        if redis_url:
            try:
                self.r = redis.from_url(redis_url)
                self.r.ping()
                logger.info("Redis connection established successfully")
            except Exception as e:
                logger.error(f"Redis connection failed, keeping event ids in memory: {e}")
                self.r = None

    @property
    def backend(self) -> str:
        return "redis" if self.r else "memory"

    def check_and_set(self, key: str) -> bool:
        """
        Record an event id unless it was already seen within the window.

        Args:
            key: Event identifier from the webhook payload

        Returns:
            True if the id is new (and now recorded), False if it is a duplicate
        """
        if not key:
            return True

        if self.r:
            try:
                result = self.r.set(
                    name=f"hotmart:event:{key}",
                    value=int(time.time()),
                    ex=self.ttl,
                    nx=True
                )
                return result is True
            except Exception as e:
                logger.error(f"Idempotency check failed: {e}")
                # Fail open - allow processing to continue
                return True

        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._expires_at:
                return False
            self._expires_at[key] = now + self.ttl
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            self._purge(self._clock())
            return key in self._expires_at

    def _purge(self, now: float) -> None:
        # caller holds the lock; fixed ttl, so insertion order is deadline order
        while self._expires_at:
            deadline = next(iter(self._expires_at.values()))
            if deadline > now:
                break
            self._expires_at.popitem(last=False)

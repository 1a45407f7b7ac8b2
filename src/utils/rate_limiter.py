"""Sliding-window rate limiting for the public endpoints."""

import time
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
from threading import Lock
from datetime import datetime

logger = logging.getLogger(__name__)


class RateLimitStore(ABC):
    """Storage backend for request timestamps.

    ``check_and_record`` must be atomic: the read, the window filter and the
    append happen as one step, so two concurrent requests can never both see
    room for one more. A shared store (e.g. Redis) can implement the same
    contract for multi-instance deployments.
    """

    @abstractmethod
    def check_and_record(self, key: str, now: float, limit: int, window_seconds: float) -> bool:
        """Admit and record a request if fewer than ``limit`` fall in the window.

        Rejected requests are not recorded.
        """
        pass

    @abstractmethod
    def timestamps(self, key: str, now: float, window_seconds: float) -> List[float]:
        """Timestamps for ``key`` still inside the window, oldest first."""
        pass

    @abstractmethod
    def reset(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def key_count(self) -> int:
        return 0


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store: a dict of key -> list of timestamps behind a lock.

    Keys whose newest timestamp has aged out of the window are evicted every
    ``cleanup_interval`` seconds, so memory tracks active clients only.
    """

    def __init__(self, cleanup_interval: float = 300):
        self.cleanup_interval = cleanup_interval
        self._requests: Dict[str, List[float]] = {}
        self._windows: Dict[str, float] = {}
        self._lock = Lock()
        self._last_cleanup: Optional[float] = None

    def check_and_record(self, key: str, now: float, limit: int, window_seconds: float) -> bool:
        with self._lock:
            if self._last_cleanup is None:
                self._last_cleanup = now
            elif now - self._last_cleanup > self.cleanup_interval:
                self._cleanup(now)

            recent = [t for t in self._requests.get(key, []) if now - t < window_seconds]
            self._windows[key] = window_seconds

            if len(recent) >= limit:
                self._requests[key] = recent
                return False

            recent.append(now)
            self._requests[key] = recent
            return True

    def timestamps(self, key: str, now: float, window_seconds: float) -> List[float]:
        with self._lock:
            return [t for t in self._requests.get(key, []) if now - t < window_seconds]

    def reset(self, key: str) -> None:
        with self._lock:
            self._requests.pop(key, None)
            self._windows.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._requests.clear()
            self._windows.clear()

    def key_count(self) -> int:
        with self._lock:
            return len(self._requests)

    def _cleanup(self, now: float) -> None:
        # Caller holds the lock
        stale = [
            key for key, stamps in self._requests.items()
            if not stamps or now - stamps[-1] >= self._windows.get(key, 0)
        ]
        for key in stale:
            del self._requests[key]
            self._windows.pop(key, None)

        if stale:
            logger.info(f"Cleaned up {len(stale)} stale rate limit keys")
        self._last_cleanup = now


class RateLimiter:
    """Per-client sliding-window rate limiter.

    Each client (identified by IP) may make at most ``max_requests`` requests
    in any ``window_seconds`` span. Keys are namespaced by ``prefix`` so the
    meme, contact and mockup policies can share one store.

    Attributes:
        max_requests: Maximum requests allowed per window
        window_seconds: Time window in seconds
        prefix: Key namespace for this policy

    Example:
        limiter = RateLimiter(InMemoryRateLimitStore(), max_requests=3, window_seconds=300, prefix="meme")

        allowed, retry_after = limiter.is_allowed("192.168.1.1")
        if not allowed:
            print(f"Rate limited. Retry after {retry_after} seconds")
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        max_requests: int = 3,
        window_seconds: int = 300,
        prefix: str = "default"
    ):
        """Initialize the rate limiter.

        Args:
            store: Timestamp store (defaults to a private in-memory store)
            max_requests: Maximum requests per window (default: 3)
            window_seconds: Time window in seconds (default: 300)
            prefix: Key namespace (default: "default")
        """
        self.store = store or InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

        logger.info(
            f"RateLimiter '{prefix}' initialized: {max_requests} requests per {window_seconds}s"
        )

    def _key(self, client_id: str) -> str:
        return f"{self.prefix}_{client_id}"

    def admit(self, client_id: str, now: Optional[float] = None) -> bool:
        """Admit the request and record it, or reject it without recording.

        Args:
            client_id: Unique identifier for the client (e.g., IP address)
            now: Current time in seconds (defaults to the wall clock)
        """
        now = time.time() if now is None else now
        allowed = self.store.check_and_record(
            self._key(client_id), now, self.max_requests, self.window_seconds
        )
        if not allowed:
            logger.warning(f"Rate limit exceeded for {self.prefix}:{client_id}")
        return allowed

    def is_allowed(self, client_id: str, now: Optional[float] = None) -> Tuple[bool, Optional[int]]:
        """Check and record a request from the client.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
            - is_allowed: True if request is allowed, False if rate limited
            - retry_after_seconds: If rate limited, seconds until the oldest
              request in the window expires
        """
        now = time.time() if now is None else now
        if self.admit(client_id, now):
            return True, None

        stamps = self.store.timestamps(self._key(client_id), now, self.window_seconds)
        oldest = stamps[0] if stamps else now
        retry_after = int(self.window_seconds - (now - oldest)) + 1
        return False, retry_after

    def reset_client(self, client_id: str) -> None:
        """Reset rate limit for a specific client."""
        self.store.reset(self._key(client_id))
        logger.info(f"Rate limit reset for client: {self.prefix}:{client_id}")

    def get_client_status(self, client_id: str, now: Optional[float] = None) -> Dict:
        """Get rate limit status for a client without recording a request.

        Returns:
            Dictionary with status information
        """
        now = time.time() if now is None else now
        stamps = self.store.timestamps(self._key(client_id), now, self.window_seconds)

        reset_time = None
        if stamps:
            reset_time = datetime.fromtimestamp(stamps[0] + self.window_seconds).isoformat()

        return {
            "client_id": client_id,
            "requests_made": len(stamps),
            "requests_remaining": max(0, self.max_requests - len(stamps)),
            "window_seconds": self.window_seconds,
            "reset_time": reset_time,
        }

    def get_stats(self) -> Dict:
        """Get limiter configuration and store statistics."""
        return {
            "policy": self.prefix,
            "max_requests_per_window": self.max_requests,
            "window_seconds": self.window_seconds,
            "tracked_keys": self.store.key_count(),
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"RateLimiter(prefix='{self.prefix}', max_requests={self.max_requests}, "
            f"window_seconds={self.window_seconds})"
        )


# Process-wide limiters sharing one store
_store: Optional[InMemoryRateLimitStore] = None
_limiters: Dict[str, RateLimiter] = {}


def _policy_limit(name: str, settings) -> int:
    limits = {
        "meme": settings.meme_rate_limit,
        "contact": settings.contact_rate_limit,
        "tshirt": settings.mockup_rate_limit,
    }
    if name not in limits:
        raise ValueError(f"Unknown rate limit policy: '{name}'. Supported: {', '.join(limits)}")
    return limits[name]


def get_rate_limiter(name: str) -> RateLimiter:
    """Get or create the process-wide limiter for a policy.

    Args:
        name: "meme", "contact" or "tshirt"

    Raises:
        ValueError: If the policy name is unknown
    """
    global _store
    from app.config import settings

    if name not in _limiters:
        if _store is None:
            _store = InMemoryRateLimitStore(cleanup_interval=settings.rate_limit_cleanup_interval)
        _limiters[name] = RateLimiter(
            store=_store,
            max_requests=_policy_limit(name, settings),
            window_seconds=settings.rate_limit_window,
            prefix=name,
        )

    return _limiters[name]


def reset_rate_limiters() -> None:
    """Drop all process-wide limiters and their shared store (useful for testing)."""
    global _store
    _store = None
    _limiters.clear()

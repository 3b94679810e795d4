"""
Rate Limiter - per-client cooldown gate.

Checked before any backend work. Two rules, both in-memory and O(1) per call:

- cooldown: a client must wait ``cooldown_seconds`` between requests
- budget: at most ``requests_per_minute`` accepted requests in a sliding
  one-minute window

Rejected requests are not recorded, so a client hammering the endpoint does
not extend its own cooldown. For multi-instance deployments this would move
to Redis; a single process is the supported setup.
"""
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from hypo.core.logging_config import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a cooldown check."""
    allowed: bool
    wait_time: int = 0
    reason: Optional[str] = None
    remaining: int = 0


class RateLimiter:
    """
    Cooldown plus sliding-window limiter keyed by client identity.

    Example:
        >>> limiter = RateLimiter(cooldown_seconds=3)
        >>> limiter.check("10.0.0.1").allowed
        True
        >>> limiter.check("10.0.0.1").wait_time   # immediately after
        3
    """

    COOLDOWN = "cooldown"
    BUDGET = "budget"

    def __init__(
        self,
        cooldown_seconds: float = 3.0,
        requests_per_minute: int = 20,
        cleanup_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown = cooldown_seconds
        self.limit = requests_per_minute
        self.cleanup_interval = cleanup_interval_seconds
        self._clock = clock

        self._requests: Dict[str, List[float]] = {}
        self._last_request: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._last_cleanup = clock()

        logger.info(
            f"RateLimiter initialized: cooldown={cooldown_seconds}s, "
            f"{requests_per_minute} requests/minute"
        )

    def check(self, identifier: str) -> RateLimitDecision:
        """
        Check and, when allowed, record a request for ``identifier``.

        Returns:
            RateLimitDecision; ``wait_time`` is whole seconds, rounded up.
        """
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            recent = [t for t in self._requests.get(identifier, []) if now - t < WINDOW_SECONDS]
            self._requests[identifier] = recent

            if len(recent) >= self.limit:
                wait_time = math.ceil(WINDOW_SECONDS - (now - recent[0]))
                logger.warning(f"Request budget exhausted for: {identifier[:16]}")
                return RateLimitDecision(False, max(1, wait_time), self.BUDGET, 0)

            last = self._last_request.get(identifier)
            if last is not None and now - last < self.cooldown:
                wait_time = math.ceil(self.cooldown - (now - last))
                logger.info(f"Cooldown active for {identifier[:16]}: wait {wait_time}s")
                return RateLimitDecision(False, max(1, wait_time), self.COOLDOWN, self.limit - len(recent))

            recent.append(now)
            self._last_request[identifier] = now
            return RateLimitDecision(True, 0, None, self.limit - len(recent))

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget one client, or everyone when ``identifier`` is None."""
        with self._lock:
            if identifier is None:
                self._requests.clear()
                self._last_request.clear()
            else:
                self._requests.pop(identifier, None)
                self._last_request.pop(identifier, None)

    def get_stats(self) -> Dict[str, float]:
        with self._lock:
            return {
                "cooldown_seconds": self.cooldown,
                "max_requests_per_minute": self.limit,
                "active_clients": len(self._last_request),
            }

    def _maybe_cleanup(self, now: float) -> None:
        """Drop clients idle for longer than both the window and the cooldown."""
        if now - self._last_cleanup < self.cleanup_interval:
            return

        horizon = max(WINDOW_SECONDS, self.cooldown)
        for identifier in list(self._last_request.keys()):
            if now - self._last_request[identifier] >= horizon:
                del self._last_request[identifier]
                self._requests.pop(identifier, None)

        self._last_cleanup = now
        logger.debug(f"Rate limiter cleanup: {len(self._last_request)} active clients")

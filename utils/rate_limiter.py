"""
Per-client fixed-window rate limiter
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


class RateLimiter:
    def __init__(self, limit: int = 8, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, RateLimitWindow] = {}
        self._total_requests = 0
        self._rejected_requests = 0

    def check_rate_limit(self, client_id: str = "anon") -> RateLimitDecision:
        """Count one request for `client_id` and decide whether it may proceed"""
        now = self._clock()

        with self._lock:
            self._total_requests += 1
            window = self._windows.get(client_id)

            if window is None or now >= window.reset_at:
                self._windows[client_id] = RateLimitWindow(count=1, reset_at=now + self.window_seconds)
                return RateLimitDecision(allowed=True)

            window.count += 1
            if window.count > self.limit:
                self._rejected_requests += 1
                retry_after = max(1, math.ceil(window.reset_at - now))
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            return RateLimitDecision(allowed=True)

    def reset(self):
        with self._lock:
            self._windows.clear()

    def get_status(self) -> Dict:
        """Limiter counters"""
        with self._lock:
            return {
                "active_clients": len(self._windows),
                "total_requests": self._total_requests,
                "rejected_requests": self._rejected_requests,
                "limit": self.limit,
                "window_seconds": self.window_seconds
            }

    def get_total_requests(self) -> int:
        return self._total_requests

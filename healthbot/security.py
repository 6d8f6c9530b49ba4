"""
Rate limiting for the Health ERP chatbot.

Chat turns are limited per user id with a sliding window so a single client
cannot flood the healthcare API through the bot.
"""

import time
from datetime import datetime
from typing import Dict, Optional, Tuple, Any
from collections import defaultdict, deque
from threading import Lock

from .observability import setup_logging
from .settings import settings

# Setup logging
logger = setup_logging()


class RateLimiter:
    """
    Sliding window rate limiter keyed by user id.
    """

    def __init__(
        self,
        max_requests: int = settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds: int = settings.RATE_LIMIT_WINDOW_SECONDS,
        clock=time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.requests: Dict[str, deque] = defaultdict(deque)
        self.violations: Dict[str, int] = defaultdict(int)
        self.last_violation: Dict[str, datetime] = {}
        self._lock = Lock()

    def is_allowed(self, identifier: str) -> Tuple[bool, Optional[str]]:
        """Check if request is allowed based on rate limits."""
        now = self.clock()

        with self._lock:
            request_times = self.requests[identifier]
            self._prune(request_times, now)

            if len(request_times) >= self.max_requests:
                self.violations[identifier] += 1
                self.last_violation[identifier] = datetime.utcnow()
                logger.warning(
                    "Rate limit exceeded",
                    user_id=identifier,
                    requests_in_window=len(request_times),
                    max_requests=self.max_requests,
                )
                return False, f"Rate limit exceeded. Try again in {self.window_seconds} seconds."

            request_times.append(now)
            return True, None

    def get_stats(self, identifier: str) -> Dict[str, Any]:
        """Get rate limiting stats for an identifier."""
        with self._lock:
            request_times = self.requests.get(identifier, deque())
            self._prune(request_times, self.clock())
            last = self.last_violation.get(identifier)

            return {
                "requests_in_window": len(request_times),
                "max_requests": self.max_requests,
                "window_size_seconds": self.window_seconds,
                "violations_count": self.violations.get(identifier, 0),
                "last_violation": last.isoformat() if last else None,
            }

    def reset(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self.requests.clear()
                self.violations.clear()
                self.last_violation.clear()
            else:
                self.requests.pop(identifier, None)
                self.violations.pop(identifier, None)
                self.last_violation.pop(identifier, None)

    def _prune(self, request_times: deque, now: float) -> None:
        while request_times and request_times[0] <= now - self.window_seconds:
            request_times.popleft()

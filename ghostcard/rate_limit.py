"""
Per-client fixed-window rate limiting.

Each concern (auth, cards, charges, analytics, general) gets its own
RateLimiter with a request budget per window. Counters are keyed by client
address and live in process memory on app.state.rate_limiters; they are the
only state shared across requests. A window resets when it has elapsed, and
elapsed windows are swept out once per window length so the table only holds
clients seen recently. Exhausting a window yields a 429 with a Retry-After
hint; requests are never queued.

Routes declare the limiter as a dependency *after* the authentication/role
dependency, so anonymous or wrong-role calls are rejected without consuming
the caller's budget:

    user: User = Depends(require_roles(UserRole.USER)),
    _: None = Depends(rate_limit("cards")),
"""

import math
import time
from dataclasses import dataclass
from typing import Callable

import structlog
from fastapi import Request

from ghostcard.config import Settings
from ghostcard.exceptions import RateLimitExceededError

logger = structlog.get_logger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int


class RateLimiter:
    """Fixed-window counter per key."""

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._next_sweep_at: float | None = None

    def __len__(self) -> int:
        """Number of clients with a window currently held."""
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        if self._next_sweep_at is not None and now < self._next_sweep_at:
            return
        self._windows = {
            key: window
            for key, window in self._windows.items()
            if now - window.started_at < self.window_seconds
        }
        self._next_sweep_at = now + self.window_seconds

    def hit(self, key: str) -> None:
        """
        Count one request for key.

        Raises:
            RateLimitExceededError: If key has used up its current window.
        """
        now = self._clock()
        self._sweep(now)
        window = self._windows.get(key)

        if window is None or now - window.started_at >= self.window_seconds:
            window = _Window(started_at=now, count=0)
            self._windows[key] = window

        if window.count >= self.max_requests:
            retry_after = math.ceil(self.window_seconds - (now - window.started_at))
            logger.warning("rate_limit_exceeded", limiter=self.name, client=key)
            raise RateLimitExceededError(self.message, retry_after=max(retry_after, 1))

        window.count += 1


def window_phrase(seconds: int) -> str:
    """Wording for a window length in 429 messages, e.g. "an hour"."""
    if seconds == 60 * 60:
        return "an hour"
    if seconds % (60 * 60) == 0:
        return f"{seconds // (60 * 60)} hours"
    if seconds == 60:
        return "a minute"
    if seconds % 60 == 0:
        return f"{seconds // 60} minutes"
    return f"{seconds} seconds"


# limiter name -> (budget setting prefix, message before the window wording)
LIMITERS = {
    "auth": ("AUTH", "Too many login attempts"),
    "cards": ("CARD", "Too many card operations"),
    "charges": ("CHARGE", "Too many charge operations"),
    "analytics": ("ANALYTICS", "Too many analytics requests"),
    "general": ("GENERAL", "Too many requests from this IP"),
}


def build_rate_limiters(settings: Settings) -> dict[str, RateLimiter]:
    """Create one limiter per concern from settings."""
    limiters = {}
    for name, (prefix, reason) in LIMITERS.items():
        window_seconds = getattr(settings, f"{prefix}_RATE_WINDOW_SECONDS")
        limiters[name] = RateLimiter(
            name,
            getattr(settings, f"{prefix}_RATE_LIMIT"),
            window_seconds,
            f"{reason}, please try again after {window_phrase(window_seconds)}",
        )
    return limiters


def rate_limit(name: str):
    """Build a FastAPI dependency that counts the request against limiter `name`."""

    async def dependency(request: Request) -> None:
        if not request.app.state.settings.RATE_LIMIT_ENABLED:
            return
        limiter: RateLimiter = request.app.state.rate_limiters[name]
        client = request.client.host if request.client else "unknown"
        limiter.hit(client)

    return dependency

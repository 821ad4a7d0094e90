from dataclasses import dataclass
from threading import Lock

from shopguard.core.sliding_window import Clock, now_ms, purge_expired


@dataclass
class _WindowState:
    count: int
    reset_time: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_time: int

    def retry_after_seconds(self, now: int) -> int:
        # ceil of the remaining window, never below one second
        return max(-(-(self.reset_time - now) // 1000), 1)

    def headers(self, now: int) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
            "Retry-After": str(self.retry_after_seconds(now)),
        }


class SlidingWindowRateLimiter:
    def __init__(self, *, max_requests: int, window_ms: int, clock: Clock = now_ms):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.clock = clock
        self._states: dict[str, _WindowState] = {}
        self._lock = Lock()

    def check(self, key: str) -> RateLimitResult:
        """Consume one request for ``key`` and report whether it is allowed."""
        now = self.clock()
        with self._lock:
            cutoff = now - self.window_ms
            purge_expired(self._states, lambda state: state.reset_time <= cutoff)

            state = self._states.get(key)
            if state is None or state.reset_time <= now:
                state = _WindowState(count=1, reset_time=now + self.window_ms)
                self._states[key] = state
                return RateLimitResult(
                    success=True,
                    limit=self.max_requests,
                    remaining=self.max_requests - 1,
                    reset_time=state.reset_time,
                )

            state.count += 1
            if state.count > self.max_requests:
                return RateLimitResult(
                    success=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_time=state.reset_time,
                )
            return RateLimitResult(
                success=True,
                limit=self.max_requests,
                remaining=self.max_requests - state.count,
                reset_time=state.reset_time,
            )

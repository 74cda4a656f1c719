# app/services/rate_limiter.py
"""
Per-provider sliding-window rate limiting.

Every outbound carrier call (quote, create, track, cancel and the auth/address
calls behind them) draws from one budget per provider. State is in-process and
lives for the lifetime of the limiter instance.
"""

import asyncio
import logging
import math
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional, Union

from app.core.enums import ProviderKey

logger = logging.getLogger(__name__)

ProviderLike = Union[ProviderKey, str]


UNLIMITED = sys.maxsize


@dataclass
class RateLimitConfig:
    max_requests: int
    window: float  # seconds

    def __post_init__(self):
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be positive, got {self.max_requests}")
        if self.window <= 0:
            raise ValueError(f"window must be positive, got {self.window}")


@dataclass
class _RateLimitState:
    config: RateLimitConfig
    timestamps: Deque[float] = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)


class ProviderRateLimiter:
    """
    Sliding-window counter keyed by provider.

    A call is admitted when fewer than `max_requests` calls were admitted in
    the trailing `window`. Providers without a config are unlimited. Only
    `update_config` raises, when given a non-positive limit or window.
    """

    def __init__(
        self,
        configs: Optional[Dict[str, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._configs: Dict[str, RateLimitConfig] = {
            self._key(k): v for k, v in (configs or {}).items()
        }
        self._states: Dict[str, _RateLimitState] = {}
        self._states_lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ProviderRateLimiter":
        configs = {
            provider: RateLimitConfig(
                max_requests=limits["max_requests"],
                window=limits["window_ms"] / 1000.0,
            )
            for provider, limits in settings.rate_limits().items()
        }
        return cls(configs, **kwargs)

    @staticmethod
    def _key(provider: ProviderLike) -> str:
        return str(getattr(provider, "value", provider)).lower()

    def _state(self, key: str) -> Optional[_RateLimitState]:
        config = self._configs.get(key)
        if config is None:
            return None
        with self._states_lock:
            state = self._states.get(key)
            if state is None:
                state = _RateLimitState(config=config)
                self._states[key] = state
            return state

    @staticmethod
    def _purge(state: _RateLimitState, now: float) -> None:
        window = state.config.window
        while state.timestamps and now - state.timestamps[0] >= window:
            state.timestamps.popleft()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def allow(self, provider: ProviderLike) -> bool:
        """Admit and record one call if the provider has budget left."""
        state = self._state(self._key(provider))
        if state is None:
            return True
        with state.lock:
            now = self._clock()
            self._purge(state, now)
            if len(state.timestamps) < state.config.max_requests:
                state.timestamps.append(now)
                return True
            return False

    def remaining(self, provider: ProviderLike) -> int:
        """Calls still admissible in the current window (UNLIMITED when unconfigured)."""
        state = self._state(self._key(provider))
        if state is None:
            return UNLIMITED
        with state.lock:
            self._purge(state, self._clock())
            return max(0, state.config.max_requests - len(state.timestamps))

    def time_until_reset(self, provider: ProviderLike) -> float:
        """Seconds until the oldest recorded call leaves the window."""
        state = self._state(self._key(provider))
        if state is None:
            return 0.0
        with state.lock:
            now = self._clock()
            self._purge(state, now)
            if not state.timestamps:
                return 0.0
            return max(0.0, state.timestamps[0] + state.config.window - now)

    async def await_slot(self, provider: ProviderLike) -> None:
        """Suspend the caller until a call can be admitted, then record it."""
        key = self._key(provider)
        while not self.allow(key):
            wait = self.time_until_reset(key)
            logger.info(f"Rate limit reached for {key}, waiting {wait:.2f}s")
            await self._sleep(wait)

    def update_config(self, provider: ProviderLike, max_requests: int, window: float) -> None:
        """Replace a provider's limits; recorded timestamps are kept."""
        key = self._key(provider)
        config = RateLimitConfig(max_requests=max_requests, window=window)
        self._configs[key] = config
        with self._states_lock:
            state = self._states.get(key)
        if state is not None:
            with state.lock:
                state.config = config
        logger.info(f"Rate limit for {key} set to {max_requests} requests per {window}s")

    def status(self, provider: ProviderLike) -> Dict[str, Optional[int]]:
        key = self._key(provider)
        configured = key in self._configs
        reset = self.time_until_reset(key)
        return {
            "provider": key,
            "remaining_requests": self.remaining(key) if configured else None,
            "time_until_reset_ms": int(math.ceil(reset * 1000)),
            "time_until_reset_seconds": int(math.ceil(reset)),
        }

    def status_all(self) -> Dict[str, Dict[str, Optional[int]]]:
        return {key: self.status(key) for key in self._configs}

"""Availability probing — Time-windowed, lock-guarded health cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

AVAILABILITY_WINDOW_SECONDS = 60.0


def is_available_status(status: int | None) -> bool:
    """Classify a probe response status."""
    if status is None:
        return False
    return not (status >= 404 or status in (400, 402))


@dataclass(frozen=True)
class AvailabilityState:
    available: bool = False
    checked_at: float | None = None


class AvailabilityProber:
    """Caches the result of a lightweight probe request.

    A positive result is trusted for ``window`` seconds. A negative result
    is never trusted: the next call probes again. Transport failures do
    not refresh the timestamp.

    The whole check-probe-update sequence runs under one lock, so
    concurrent callers share a single probe and never observe a
    half-updated state.

    Args:
        probe: Coroutine returning the probe's status code (None for no response).
        window: Seconds a positive result is trusted.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[int | None]],
        window: float = AVAILABILITY_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._probe = probe
        self._window = window
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = AvailabilityState()

    @property
    def state(self) -> AvailabilityState:
        return self._state

    def _is_fresh(self, state: AvailabilityState) -> bool:
        return (
            state.available
            and state.checked_at is not None
            and self._clock() - state.checked_at < self._window
        )

    async def is_available(self) -> bool:
        async with self._lock:
            if self._is_fresh(self._state):
                return True

            try:
                status = await self._probe()
            except httpx.RequestError:
                logger.warning("Web client was unable to connect to endpoint.", exc_info=True)
                self._state = AvailabilityState(available=False, checked_at=self._state.checked_at)
                return False

            if is_available_status(status):
                self._state = AvailabilityState(available=True, checked_at=self._clock())
            else:
                logger.info("Availability probe returned status %s", status)
                self._state = AvailabilityState(available=False, checked_at=self._state.checked_at)
            return self._state.available

    def invalidate(self) -> None:
        """Forget the cached result; the next call probes."""
        self._state = AvailabilityState()

"""Paid Detection Service Module

Bounded FIFO gate in front of the Gemini paid tier probe, with its own
concurrency limit and exponential backoff on rate limited answers. It is
independent of the main scheduler: a run with 20 concurrent key tests still
has at most ``max_concurrency`` paid tier probes in flight.
"""

# Standard library imports
import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Deque, Optional, Protocol

# Local imports
from keyprobe import root_logger
from keyprobe.core.config import settings
from keyprobe.models import TierResult
from keyprobe.probes.paid_tier import PaidTierProbe


class TierProbe(Protocol):
    async def probe_tier(self, credential: str) -> TierResult: ...


class PaidDetectionQueue:
    """Concurrency-limited, backoff-aware runner for paid tier probes.

    The running count and the wait list are only touched between awaits on
    the event loop, so acquire/release pairs never interleave.

    Attributes:
        probe: Paid tier probe to run
        max_concurrency: Probes allowed in flight at once
        base_ms: Delay before the first retry of a rate limited probe
        factor: Growth factor of the delay between retries
        max_ms: Cap of the delay
        retries: Retries of a rate limited probe before giving up
    """

    def __init__(
        self,
        probe: TierProbe,
        max_concurrency: int = 5,
        base_ms: int = 500,
        factor: float = 2.0,
        max_ms: int = 8000,
        retries: int = 2,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.probe = probe
        self.max_concurrency = max_concurrency
        self.base_ms = base_ms
        self.factor = factor
        self.max_ms = max_ms
        self.retries = retries

        self._in_flight = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self.peak_in_flight = 0

    @classmethod
    def from_settings(cls, probe: TierProbe) -> "PaidDetectionQueue":
        return cls(
            probe,
            max_concurrency=settings.paid_detection_max_concurrency,
            base_ms=settings.paid_detection_backoff_base_ms,
            factor=settings.paid_detection_backoff_factor,
            max_ms=settings.paid_detection_backoff_max_ms,
            retries=settings.paid_detection_retries,
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queued(self) -> int:
        return len(self._waiters)

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay before retry ``attempt + 1``: min(max_ms, base_ms * factor^attempt)"""
        return min(self.max_ms, self.base_ms * (self.factor**attempt))

    def _occupy(self) -> None:
        self._in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self._in_flight)

    async def _acquire(self) -> None:
        if self._in_flight < self.max_concurrency and not self._waiters:
            self._occupy()
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        root_logger.debug(
            f"[paid] queued, in flight: {self._in_flight}, waiting: {len(self._waiters)}"
        )
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before cancellation
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        self._in_flight -= 1
        while self._waiters and self._in_flight < self.max_concurrency:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            # Slot is handed over before the waiter resumes
            self._occupy()
            waiter.set_result(None)

    @asynccontextmanager
    async def _slot(self):
        await self._acquire()
        try:
            yield
        finally:
            self._release()

    async def detect(self, credential: str) -> TierResult:
        """Run the paid tier probe for one credential.

        Waits for a free slot in arrival order, then retries rate limited
        answers with exponential backoff. Never raises for probe failures.

        Returns:
            The probe's result; ``rate_limited`` once retries are exhausted
        """
        async with self._slot():
            attempt = 0
            while True:
                try:
                    result = await self.probe.probe_tier(credential)
                except Exception as e:
                    return TierResult(is_paid=False, reason=f"limiter_error:{e}")

                if result.reason == "rate_limited" and attempt < self.retries:
                    delay = self.backoff_delay_ms(attempt)
                    root_logger.debug(
                        f"[paid] {credential[:8]}... rate limited, "
                        f"retry {attempt + 1}/{self.retries} in {delay:.0f}ms"
                    )
                    await asyncio.sleep(delay / 1000)
                    attempt += 1
                    continue
                return result


def build_paid_queue(session, base_url: Optional[str] = None) -> PaidDetectionQueue:
    """Create a paid detection queue over a real PaidTierProbe"""
    return PaidDetectionQueue.from_settings(PaidTierProbe(session, base_url=base_url))

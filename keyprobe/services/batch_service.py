"""Batch Service Module

Turns raw key text into a batch run and drives it through the concurrency
scheduler, with toggle-to-cancel semantics for repeated starts.
"""

# Standard library imports
import time
from typing import Callable, Coroutine, Iterable, List, Optional, Tuple

# Third-party imports
from curl_cffi import AsyncSession

# Local imports
from keyprobe import logger, c
from keyprobe.core.config import settings
from keyprobe.core.scheduler import ConcurrencyScheduler
from keyprobe.exceptions import StateError, ValidationError
from keyprobe.models import BatchRun, Credential, ProviderType, RunRequest
from keyprobe.probes import build_probe
from keyprobe.services.paid_detection_service import build_paid_queue
from keyprobe.services.retry_service import RetryRunner


def deduplicate_keys(lines: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Trim lines and drop blanks and repeats, keeping first-seen order.

    Returns:
        Tuple of (unique keys, duplicate occurrences)
    """
    seen = set()
    unique: List[str] = []
    duplicates: List[str] = []
    for line in lines:
        key = line.strip()
        if not key:
            continue
        if key in seen:
            duplicates.append(key)
            continue
        seen.add(key)
        unique.append(key)
    return unique, duplicates


def _clamp(value: Optional[int], default: int, low: int, high: int, name: str) -> int:
    if value is None:
        return default
    if value < low or value > high:
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}")
    return value


class BatchController:
    """Owns the live batch run of the process.

    Only one run is active at a time. Starting while a run is in progress
    does not start anything; it requests cancellation of the active run
    instead.

    Example:
        >>> controller = BatchController()
        >>> run = await controller.run(RunRequest(provider="openai", model="gpt-4o", keys=text))
        >>> run.count_by_status()
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSession,
        probe_factory=build_probe,
        paid_queue_factory=build_paid_queue,
        jitter_ms: Optional[Tuple[int, int]] = None,
    ):
        """Initialize the controller.

        Args:
            session_factory: Creates the HTTP session used for one run
            probe_factory: Builds the provider probe, see ``build_probe``
            paid_queue_factory: Builds the paid detection queue for Gemini runs
            jitter_ms: Pre-retry delay range overriding the settings
        """
        self.session_factory = session_factory
        self.probe_factory = probe_factory
        self.paid_queue_factory = paid_queue_factory
        self.jitter_ms = jitter_ms
        self._run: Optional[BatchRun] = None
        self._listeners: List[Callable[[int, int], None]] = []
        self.scheduler: Optional[ConcurrencyScheduler] = None

    @property
    def current(self) -> Optional[BatchRun]:
        return self._run

    @property
    def is_running(self) -> bool:
        return self._run is not None and self._run.in_progress

    def subscribe(self, listener: Callable[[int, int], None]) -> None:
        """Register a progress listener called as ``listener(completed, total)``"""
        self._listeners.append(listener)

    def prepare(self, request: RunRequest) -> BatchRun:
        """Validate the request and seed a run without starting it.

        Raises:
            ValidationError: No keys, no model, or limits out of range
            StateError: A run is already in progress
        """
        if self.is_running:
            raise StateError("A batch run is already in progress")

        unique, duplicates = deduplicate_keys(request.keys.splitlines())
        if not unique:
            raise ValidationError("No API keys provided")
        if not request.model:
            raise ValidationError("No model selected")

        concurrency = _clamp(
            request.concurrency_limit,
            settings.default_concurrency,
            1,
            settings.max_concurrency,
            "concurrency_limit",
        )
        max_retries = _clamp(
            request.max_retries,
            settings.default_max_retries,
            0,
            settings.max_retries_limit,
            "max_retries",
        )

        if duplicates:
            logger.info(
                f"{c.YELLOW}Found {len(duplicates)} duplicate key(s){c.END}, "
                f"testing {len(unique)} unique key(s)"
            )

        credentials = [
            Credential(value=key, provider=request.provider, model=request.model)
            for key in unique
        ]
        run = BatchRun(
            credentials,
            concurrency_limit=concurrency,
            max_retries=max_retries,
            provider=ProviderType(request.provider),
            model=request.model,
            proxy_base_url=request.proxy_base_url,
            duplicate_count=len(duplicates),
        )
        for listener in self._listeners:
            run.subscribe(listener)

        self._run = run
        return run

    async def execute(self, run: BatchRun) -> BatchRun:
        """Drive a prepared run to completion or cancellation"""
        if run.in_progress:
            raise StateError("Batch run is already executing")
        run.mark_started()
        return await self._drive(run)

    def launch(self, request: RunRequest) -> Tuple[BatchRun, Optional[Coroutine]]:
        """Start-or-cancel entry point for callers that run the job themselves.

        The run is marked in progress before returning, so a second call
        made before the job is scheduled already toggles cancellation.

        Returns:
            Tuple of (run, coroutine to schedule); the coroutine is None when
            the call cancelled the active run instead
        """
        if self.is_running:
            self.cancel()
            return self._run, None
        run = self.prepare(request)
        run.mark_started()
        return run, self._drive(run)

    async def _drive(self, run: BatchRun) -> BatchRun:
        run.emit_progress()
        start = time.monotonic()
        logger.info(
            f"{c.CYAN}Starting {run.provider.value} validation{c.END} of "
            f"{run.total_count} key(s), model: {run.model}, "
            f"concurrency: {run.concurrency_limit}, retries: {run.max_retries}"
        )

        try:
            async with self.session_factory() as session:
                paid_queue = None
                if run.provider == ProviderType.GEMINI and settings.paid_detection_enabled:
                    paid_queue = self.paid_queue_factory(session, run.proxy_base_url)
                probe = self.probe_factory(
                    run.provider,
                    session,
                    base_url=run.proxy_base_url,
                    paid_queue=paid_queue,
                )
                runner = RetryRunner(probe, run.max_retries, jitter_ms=self.jitter_ms)
                self.scheduler = ConcurrencyScheduler(runner)
                await self.scheduler.run_batch(run)
        except Exception as e:
            logger.error(f"Batch run failed: {e}", exc_info=True)
            raise
        finally:
            cancelled = run.cancel_requested
            run.mark_finished()
            run.emit_progress()

            counts = run.count_by_status()
            logger.info(
                f"{c.GREEN}Validation {'cancelled' if cancelled else 'completed'}{c.END} - "
                f"valid: {c.GREEN}{counts['valid']}{c.END}, "
                f"paid: {c.GREEN}{counts['paid']}{c.END}, "
                f"rate limited: {c.YELLOW}{counts['rate_limited']}{c.END}, "
                f"invalid: {c.RED}{counts['invalid']}{c.END}, "
                f"total: {c.CYAN}{run.total_count}{c.END}, "
                f"time: {c.BLUE}{time.monotonic() - start:.2f}s{c.END}"
            )

        return run

    async def run(self, request: RunRequest) -> BatchRun:
        """Start a run, or cancel the active one.

        Returns:
            The finished run, or the active run when this call cancelled it
        """
        if self.is_running:
            self.cancel()
            return self._run
        return await self.execute(self.prepare(request))

    def cancel(self) -> bool:
        """Request cancellation of the active run.

        Returns:
            True if a run is active, False if there was nothing to cancel
        """
        if not self.is_running:
            return False
        if not self._run.cancel_requested:
            logger.info(f"{c.YELLOW}Cancellation requested{c.END}")
        self._run.request_cancel()
        return True

    def clear(self) -> None:
        """Forget the finished run"""
        if self.is_running:
            raise StateError("Cannot clear a run in progress")
        self._run = None
        self.scheduler = None


# Global batch controller instance
batch_controller = BatchController()

"""Concurrency Scheduler Module

Fixed-size slot pool that keeps a bounded number of credential tests in
flight for a batch run, refilling each slot as soon as its test finishes.
"""

# Standard library imports
import asyncio
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

# Local imports
from keyprobe import logger, root_logger, c
from keyprobe.models import BatchRun, Credential


class Runner(Protocol):
    async def run_with_retry(self, credential: Credential) -> Any: ...


class Slot(NamedTuple):
    """Occupied concurrency unit.

    ``round`` counts how many times the slot has been filled, so a task is
    only ever matched to the slot occupancy that created it.
    """

    index: int
    round: int


class ConcurrencyScheduler:
    """Drives a batch run through a fixed number of slots.

    Every slot holds at most one running credential test. When a test
    finishes, the run's completed counter is bumped and that same slot is
    refilled with the next unscheduled credential, or cleared once the queue
    is exhausted. Completion order is whatever the network produces.

    Attributes:
        runner: Object testing one credential at a time (a RetryRunner)
        peak_in_flight: Highest number of simultaneous tests observed
    """

    def __init__(self, runner: Runner):
        self.runner = runner
        self.peak_in_flight = 0
        self._slots: List[Optional[asyncio.Task]] = []
        self._owners: Dict[asyncio.Task, Slot] = {}
        self._rounds: List[int] = []

    @property
    def in_flight(self) -> int:
        return len(self._owners)

    async def _run_one(self, credential: Credential) -> None:
        try:
            await self.runner.run_with_retry(credential)
        except Exception as e:
            logger.error(
                f"{c.RED}✗{c.END} {credential.masked} - test crashed: {e}", exc_info=True
            )
            credential.mark_failed(f"Test exception: {e}")

    def _fill(self, index: int, credential: Credential) -> None:
        self._rounds[index] += 1
        task = asyncio.create_task(self._run_one(credential))
        self._slots[index] = task
        self._owners[task] = Slot(index, self._rounds[index])
        self.peak_in_flight = max(self.peak_in_flight, len(self._owners))

    def _clear(self, slot: Slot) -> None:
        self._slots[slot.index] = None

    async def _wait_any(self) -> List[Slot]:
        """Wait until at least one occupied slot finishes.

        Returns:
            Slots whose current task completed, in slot order
        """
        done, _ = await asyncio.wait(
            set(self._owners), return_when=asyncio.FIRST_COMPLETED
        )
        finished = []
        for task in done:
            slot = self._owners.pop(task)
            if self._slots[slot.index] is task and self._rounds[slot.index] == slot.round:
                finished.append(slot)
        return sorted(finished)

    async def run_batch(self, run: BatchRun) -> None:
        """Test every credential of the run with ``run.concurrency_limit`` slots.

        Stops refilling as soon as ``run.cancel_requested`` is observed; tests
        already in flight are allowed to finish and are still counted.
        """
        limit = max(1, run.concurrency_limit)
        queue = run.credentials
        next_index = 0

        self._slots = [None] * limit
        self._rounds = [0] * limit
        self._owners = {}
        self.peak_in_flight = 0

        for index in range(min(limit, len(queue))):
            self._fill(index, queue[next_index])
            next_index += 1

        root_logger.debug(
            f"Scheduler started with {len(self._owners)}/{limit} slot(s) "
            f"for {len(queue)} credential(s)"
        )

        try:
            while self._owners and not run.cancel_requested:
                for slot in await self._wait_any():
                    run.record_completion()
                    if run.cancel_requested:
                        self._clear(slot)
                        continue
                    if next_index < len(queue):
                        self._fill(slot.index, queue[next_index])
                        next_index += 1
                    else:
                        self._clear(slot)

            if self._owners:
                logger.info(
                    f"{c.YELLOW}Cancellation observed{c.END}, waiting for "
                    f"{len(self._owners)} test(s) in flight"
                )
                await self._drain(run)
        except asyncio.CancelledError:
            await self._abort()
            raise

    async def _abort(self) -> None:
        """Cancel every running test and wait until they are gone"""
        tasks = list(self._owners)
        if tasks:
            logger.warning(
                f"{c.YELLOW}Scheduler cancelled{c.END}, stopping {len(tasks)} test(s)"
            )
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._owners = {}
        self._slots = [None] * len(self._slots)

    async def _drain(self, run: BatchRun) -> None:
        """Let in-flight tests settle without scheduling new ones"""
        while self._owners:
            for slot in await self._wait_any():
                run.record_completion()
                self._clear(slot)

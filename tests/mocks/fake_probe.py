"""Scripted provider and paid tier probes."""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Union

from keyprobe.models import ProbeOutcome, TierResult


Step = Union[ProbeOutcome, Exception]


class ScriptedProbe:
    """Probe returning scripted outcomes per credential.

    Each credential consumes its script one step per call; once the script is
    exhausted the last step repeats. Credentials without a script succeed.
    Tracks how many probes are in flight at once.
    """

    def __init__(
        self,
        scripts: Optional[Dict[str, List[Step]]] = None,
        delay: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.scripts = scripts or {}
        self.delay = delay
        self.delays = delays or {}
        self.calls: Dict[str, int] = defaultdict(int)
        self.active: Dict[str, int] = defaultdict(int)
        self.in_flight = 0
        self.peak_in_flight = 0
        self.overlapping_same_key = False

    async def probe(self, credential: str, model: str) -> ProbeOutcome:
        self.in_flight += 1
        self.active[credential] += 1
        if self.active[credential] > 1:
            self.overlapping_same_key = True
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(credential, self.delay))
            script = self.scripts.get(credential)
            index = self.calls[credential]
            self.calls[credential] += 1
            if not script:
                return ProbeOutcome.ok()
            step = script[min(index, len(script) - 1)]
            if isinstance(step, Exception):
                raise step
            return step.model_copy()
        finally:
            self.in_flight -= 1
            self.active[credential] -= 1


class ScriptedTierProbe:
    """Paid tier probe returning scripted results in call order."""

    def __init__(
        self,
        results: Optional[List[Union[TierResult, Exception]]] = None,
        default: Optional[TierResult] = None,
        delay: float = 0.0,
    ):
        self.results = list(results or [])
        self.default = default or TierResult(is_paid=True, reason="cached_ok")
        self.delay = delay
        self.calls: List[str] = []
        self.started: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def probe_tier(self, credential: str) -> TierResult:
        self.started.append(credential)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            self.calls.append(credential)
            if self.results:
                item = self.results.pop(0)
                if isinstance(item, Exception):
                    raise item
                return item
            return self.default
        finally:
            self.in_flight -= 1

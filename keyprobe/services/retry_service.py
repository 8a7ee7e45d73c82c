"""Retry Service Module

Decides which failed probe outcomes are transient and drives the bounded
per-credential attempt loop.
"""

# Standard library imports
import asyncio
import random
import re
from typing import Optional, Protocol, Tuple

# Local imports
from keyprobe import logger, c
from keyprobe.core.config import settings
from keyprobe.models import Credential, ProbeOutcome


RETRYABLE_STATUS_CODES = frozenset({403, 502, 503, 504})

# Substrings of transport-level failure details
RETRYABLE_MARKERS = ("timeout", "network", "connection", "fetch")

PROBE_EXCEPTION = "Probe exception"

_PARENTHESIZED_CODE = re.compile(r"\((\d{3})\)")
_HTTP_CODE = re.compile(r"HTTP (\d{3})")


class Probe(Protocol):
    async def probe(self, credential: str, model: str) -> ProbeOutcome: ...


def extract_status_code(error_detail: Optional[str]) -> Optional[int]:
    """Pull an HTTP status code out of a failure detail.

    Matches a ``(NNN)`` parenthetical first, then an ``HTTP NNN`` marker.

    Returns:
        The status code, or None when the detail carries none
    """
    if not error_detail or not isinstance(error_detail, str):
        return None
    match = _PARENTHESIZED_CODE.search(error_detail)
    if match:
        return int(match.group(1))
    match = _HTTP_CODE.search(error_detail)
    if match:
        return int(match.group(1))
    return None


def should_retry(error_detail: Optional[str], status_code: Optional[int]) -> bool:
    """Tell whether a failed outcome is worth another attempt.

    403 is included because several providers answer throttled keys with it.
    400/401/404 and application errors are definitive.
    """
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    if error_detail and isinstance(error_detail, str):
        lowered = error_detail.lower()
        if any(marker in lowered for marker in RETRYABLE_MARKERS):
            return True
    return False


class RetryRunner:
    """Runs a probe against one credential with bounded retries.

    Attempts are numbered from 0 and run strictly one after another; attempt
    ``max_retries`` is the last. Success and rate limiting end the loop at
    once. Any other failure is retried only when ``should_retry`` agrees,
    while an exception raised by the probe is retried as long as attempts
    remain.

    Attributes:
        probe: Provider probe shared by all credentials of a run
        max_retries: Retries allowed after the first attempt
        jitter_ms: (min, max) random delay in milliseconds before each retry
        probe_calls: Total probe invocations made through this runner
    """

    def __init__(
        self,
        probe: Probe,
        max_retries: int,
        jitter_ms: Optional[Tuple[int, int]] = None,
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.probe = probe
        self.max_retries = max_retries
        self.jitter_ms = jitter_ms or (
            settings.retry_jitter_min_ms,
            settings.retry_jitter_max_ms,
        )
        self.probe_calls = 0

    def _jitter_seconds(self) -> float:
        low, high = self.jitter_ms
        return random.uniform(low, high) / 1000

    async def run_with_retry(self, credential: Credential) -> ProbeOutcome:
        """Test one credential and write the final status into it.

        Args:
            credential: Pending record owned by the caller

        Returns:
            Outcome of the last attempt
        """
        outcome = ProbeOutcome.failed(PROBE_EXCEPTION)
        attempt = 0

        for attempt in range(self.max_retries + 1):
            if attempt == 0:
                credential.mark_testing()
            else:
                credential.mark_retrying(attempt)
                await asyncio.sleep(self._jitter_seconds())

            self.probe_calls += 1
            try:
                outcome = await self.probe.probe(credential.value, credential.model)
            except Exception as e:
                logger.warning(
                    f"{c.YELLOW}!{c.END} {credential.masked} - probe raised "
                    f"{type(e).__name__} on attempt {attempt}: {e}"
                )
                outcome = ProbeOutcome.failed(f"{PROBE_EXCEPTION}: {e}")
                continue

            if outcome.success or outcome.rate_limited:
                break
            if attempt == self.max_retries:
                break
            status_code = extract_status_code(outcome.error_detail)
            if not should_retry(outcome.error_detail, status_code):
                break

        credential.finalize(outcome, attempt)
        return outcome

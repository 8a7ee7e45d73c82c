"""Gemini Paid Tier Probe Module

Infers the billing tier of a Gemini key by creating a short-lived cached
content entry. Context caching requires a minimum prompt size and is refused
to free-tier keys, so a payload of ``min_text_len`` characters is sent.
"""

# Standard library imports
import asyncio
from typing import Optional

# Third-party imports
from curl_cffi import AsyncSession, CurlError

# Local imports
from keyprobe import root_logger
from keyprobe.core.config import settings
from keyprobe.models import TierResult


BASE_TEXT = (
    "You are an expert at analyzing API key capabilities "
    "and testing system functionality."
)


def build_payload_text(min_text_len: int) -> str:
    """Repeat the base sentence and cut it to exactly ``min_text_len`` characters"""
    repeats = -(-min_text_len // len(BASE_TEXT))
    return (BASE_TEXT * repeats)[:min_text_len]


class PaidTierProbe:
    """Single cached-content call classifying a Gemini key as paid or not.

    Never call ``probe_tier`` directly from the validation path; it is meant
    to run under ``PaidDetectionQueue``, which bounds its concurrency and
    retries rate limited answers.
    """

    def __init__(
        self,
        session: AsyncSession,
        base_url: Optional[str] = None,
        min_text_len: Optional[int] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.min_text_len = min_text_len or settings.paid_detection_min_text_len
        self.model = model or settings.paid_detection_model
        self.timeout = timeout or settings.probe_timeout

    async def probe_tier(self, credential: str) -> TierResult:
        text = build_payload_text(self.min_text_len)
        root_logger.debug(
            f"Paid tier probe for {credential[:8]}...: {len(text)} chars, "
            f"~{-(-len(text) // 4)} tokens"
        )
        body = {
            "model": self.model,
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "ttl": "30s",
        }

        try:
            response = await self.session.request(
                method="POST",
                url=f"{self.base_url}/cachedContents",
                params={"key": credential},
                headers={"Content-Type": "application/json"},
                json=body,
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return TierResult(is_paid=False, reason="network:timeout")
        except CurlError as e:
            return TierResult(is_paid=False, reason=f"network:{e}")

        if response.ok:
            return TierResult(is_paid=True, reason="cached_ok")

        code, message = self._error_fields(response)
        if (
            response.status_code == 403
            or "PERMISSION_DENIED" in code
            or "permission" in message
        ):
            return TierResult(is_paid=False, reason="permission_denied")
        if response.status_code == 429 or "RESOURCE_EXHAUSTED" in code:
            return TierResult(is_paid=False, reason="rate_limited")
        return TierResult(is_paid=False, reason=f"http_{response.status_code or 'unknown'}")

    @staticmethod
    def _error_fields(response):
        """Return (upper-cased error code/status, lower-cased message)"""
        try:
            data = response.json()
        except ValueError:
            return "", ""
        error = data.get("error") if isinstance(data, dict) else None
        if not isinstance(error, dict):
            return "", ""
        code = str(error.get("code") or error.get("status") or "").upper()
        message = str(error.get("message") or "").lower()
        # Numeric codes hide the symbolic status
        if error.get("status"):
            code = f"{code} {str(error['status']).upper()}"
        return code, message

from typing import TYPE_CHECKING, List, Optional

from curl_cffi import AsyncSession

from keyprobe import logger
from keyprobe.core.config import settings
from keyprobe.models import ProbeOutcome, ProviderType
from keyprobe.probes.base import (
    INVALID_RESPONSE_FORMAT,
    BaseProbe,
    error_message,
    mentions_rate_limit,
    read_json,
)

if TYPE_CHECKING:
    from keyprobe.services.paid_detection_service import PaidDetectionQueue


class GeminiProbe(BaseProbe):
    """Probe for the Gemini generateContent API.

    A successful probe is followed by a paid tier check through the paid
    detection queue, when one is attached. That check can only add
    information: whatever it returns, the key stays valid.
    """

    provider = ProviderType.GEMINI
    default_models = [
        "gemini-2.0-flash",
        "gemini-2.5-flash",
        "gemini-2.5-pro",
    ]

    def __init__(
        self,
        session: AsyncSession,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        paid_queue: Optional["PaidDetectionQueue"] = None,
    ):
        super().__init__(session, base_url=base_url, timeout=timeout)
        self.paid_queue = paid_queue

    @classmethod
    def default_base_url(cls) -> str:
        return settings.gemini_base_url

    async def _probe(self, credential: str, model: str) -> ProbeOutcome:
        model_name = model[len("models/"):] if model.startswith("models/") else model
        response = await self.request(
            "POST",
            f"/models/{model_name}:generateContent",
            params={"key": credential},
            json_body={"contents": [{"parts": [{"text": "Hi"}]}]},
        )

        if not response.ok:
            if response.status_code == 400:
                return ProbeOutcome.failed("Invalid API key (400)")
            return self.classify_status(response.status_code) or ProbeOutcome.failed(
                f"HTTP {response.status_code}"
            )

        data, failure = read_json(response)
        if failure:
            return failure

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if isinstance(candidates, list) and candidates:
            return ProbeOutcome.ok(paid_hint=await self._detect_paid_tier(credential))

        message = error_message(data)
        if message:
            if mentions_rate_limit(message):
                return ProbeOutcome.failed(f"Rate Limited: {message}", rate_limited=True)
            return ProbeOutcome.failed(f"API error: {message}")
        return ProbeOutcome.failed(INVALID_RESPONSE_FORMAT)

    async def _detect_paid_tier(self, credential: str) -> Optional[bool]:
        if self.paid_queue is None:
            return None
        try:
            result = await self.paid_queue.detect(credential)
        except Exception as e:
            logger.warning(f"Paid tier detection failed for {credential[:8]}...: {e}")
            return None
        return result.is_paid

    async def list_models(self, credential: str) -> List[str]:
        data = await self._get_json("/models", params={"key": credential})
        if not isinstance(data, dict) or not isinstance(data.get("models"), list):
            return []

        models = []
        for item in data["models"]:
            if not isinstance(item, dict):
                continue
            if "generateContent" not in (item.get("supportedGenerationMethods") or []):
                continue
            name = str(item.get("name", ""))
            models.append(name[len("models/"):] if name.startswith("models/") else name)
        return sorted(m for m in models if m)

from typing import List

from keyprobe.core.config import settings
from keyprobe.models import ProbeOutcome, ProviderType
from keyprobe.probes.base import (
    INVALID_RESPONSE_FORMAT,
    BaseProbe,
    error_message,
    mentions_rate_limit,
    read_json,
)


class OpenAIProbe(BaseProbe):
    """Probe for OpenAI-compatible chat completions APIs"""

    provider = ProviderType.OPENAI
    default_models = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    ]

    # Model ids that cannot serve chat completions
    excluded_model_markers = (
        "embed",
        "whisper",
        "tts",
        "dall-e",
        "moderation",
        "search",
        "similarity",
    )

    @classmethod
    def default_base_url(cls) -> str:
        return settings.openai_base_url

    def _auth_headers(self, credential: str) -> dict:
        return {"Authorization": f"Bearer {credential}"}

    async def _probe(self, credential: str, model: str) -> ProbeOutcome:
        response = await self.request(
            "POST",
            "/chat/completions",
            headers=self._auth_headers(credential),
            json_body={
                "model": model,
                "messages": [{"role": "user", "content": "Hi"}],
                "max_tokens": 1,
            },
        )

        if not response.ok:
            return self.classify_status(response.status_code) or ProbeOutcome.failed(
                f"HTTP {response.status_code}"
            )

        data, failure = read_json(response)
        if failure:
            return failure

        message = error_message(data)
        if message and mentions_rate_limit(message):
            return ProbeOutcome.failed(f"Rate Limited: {message}", rate_limited=True)

        if isinstance(data, dict) and isinstance(data.get("choices"), list):
            return ProbeOutcome.ok()
        return ProbeOutcome.failed(INVALID_RESPONSE_FORMAT)

    async def list_models(self, credential: str) -> List[str]:
        data = await self._get_json("/models", headers=self._auth_headers(credential))
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            return []

        models = []
        for item in data["data"]:
            model_id = str(item.get("id", "")) if isinstance(item, dict) else ""
            if not model_id:
                continue
            if any(marker in model_id.lower() for marker in self.excluded_model_markers):
                continue
            models.append(model_id)
        return sorted(models)

from typing import List

from keyprobe.core.config import settings
from keyprobe.models import ProbeOutcome, ProviderType
from keyprobe.probes.base import (
    INVALID_RESPONSE_FORMAT,
    JSON_PARSE_FAILED,
    BaseProbe,
    read_json,
)


class ClaudeProbe(BaseProbe):
    """Probe for the Anthropic messages API.

    A 400 ``invalid_request_error`` means the key authenticated and only the
    request was rejected, so it counts as a valid key.
    """

    provider = ProviderType.CLAUDE
    default_models = [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ]

    @classmethod
    def default_base_url(cls) -> str:
        return settings.claude_base_url

    async def _probe(self, credential: str, model: str) -> ProbeOutcome:
        response = await self.request(
            "POST",
            "/messages",
            headers={
                "x-api-key": credential,
                "anthropic-version": settings.claude_api_version,
            },
            json_body={
                "model": model,
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "Hi"}],
            },
        )

        shared = self.classify_status(response.status_code)
        if shared:
            return shared

        if response.status_code == 400:
            return self._classify_bad_request(response)

        if not response.ok:
            return ProbeOutcome.failed(f"HTTP {response.status_code}")

        data, failure = read_json(response)
        if failure:
            return failure
        if isinstance(data, dict) and (
            isinstance(data.get("content"), list) or data.get("type") == "message"
        ):
            return ProbeOutcome.ok()
        return ProbeOutcome.failed(INVALID_RESPONSE_FORMAT)

    def _classify_bad_request(self, response) -> ProbeOutcome:
        data, failure = read_json(response)
        if failure or not isinstance(data, dict):
            return ProbeOutcome.failed(JSON_PARSE_FAILED)

        error = data.get("error") if isinstance(data.get("error"), dict) else {}
        error_type = error.get("type")
        if error_type == "authentication_error":
            return ProbeOutcome.failed("Authentication error")
        if error_type == "rate_limit_error":
            return ProbeOutcome.failed("Rate Limit Error", rate_limited=True)
        if error_type == "invalid_request_error":
            return ProbeOutcome.ok()
        return ProbeOutcome.failed(f"API error: {error_type or 'unknown'}")

    async def list_models(self, credential: str) -> List[str]:
        # No listing endpoint is assumed; try each well-known model instead
        available = []
        for model in self.default_models:
            outcome = await self.probe(credential, model)
            if outcome.success:
                available.append(model)
        return available

"""Probes Module

Provider probes and the Gemini paid tier probe.
"""

from typing import TYPE_CHECKING, Dict, Optional, Type

from curl_cffi import AsyncSession

from keyprobe.models import ProviderType
from keyprobe.probes.base import BaseProbe
from keyprobe.probes.claude_probe import ClaudeProbe
from keyprobe.probes.gemini_probe import GeminiProbe
from keyprobe.probes.openai_probe import OpenAIProbe
from keyprobe.probes.paid_tier import PaidTierProbe

if TYPE_CHECKING:
    from keyprobe.services.paid_detection_service import PaidDetectionQueue


PROBE_CLASSES: Dict[ProviderType, Type[BaseProbe]] = {
    ProviderType.OPENAI: OpenAIProbe,
    ProviderType.CLAUDE: ClaudeProbe,
    ProviderType.GEMINI: GeminiProbe,
}


def build_probe(
    provider: ProviderType,
    session: AsyncSession,
    base_url: Optional[str] = None,
    paid_queue: Optional["PaidDetectionQueue"] = None,
) -> BaseProbe:
    """Create the probe for a provider.

    Args:
        provider: Provider to validate against
        session: AsyncSession shared by the run
        base_url: Optional proxy base URL
        paid_queue: Paid detection queue, only used by the Gemini probe

    Returns:
        Probe instance bound to the session
    """
    provider = ProviderType(provider)
    if provider == ProviderType.GEMINI:
        return GeminiProbe(session, base_url=base_url, paid_queue=paid_queue)
    return PROBE_CLASSES[provider](session, base_url=base_url)


__all__ = [
    "PROBE_CLASSES",
    "BaseProbe",
    "ClaudeProbe",
    "GeminiProbe",
    "OpenAIProbe",
    "PaidTierProbe",
    "build_probe",
]

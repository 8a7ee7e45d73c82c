"""Model Service Module

Offers default model names per provider and live model listing for a key.
"""

# Standard library imports
from typing import Dict, List, Optional

# Third-party imports
from curl_cffi import AsyncSession

# Local imports
from keyprobe import logger
from keyprobe.models import ProviderType
from keyprobe.probes import PROBE_CLASSES, build_probe


def default_models(provider: ProviderType) -> List[str]:
    """Model names suggested for a provider before any key is known"""
    return list(PROBE_CLASSES[ProviderType(provider)].default_models)


def all_default_models() -> Dict[str, List[str]]:
    return {provider.value: default_models(provider) for provider in ProviderType}


async def list_models(
    provider: ProviderType,
    credential: str,
    proxy_base_url: Optional[str] = None,
    session: Optional[AsyncSession] = None,
) -> List[str]:
    """List the models a credential can use.

    Args:
        provider: Provider the credential belongs to
        credential: Raw API key
        proxy_base_url: Optional proxy base URL
        session: Existing session to reuse; a temporary one is opened otherwise

    Returns:
        Sorted model names, empty when the key cannot list models
    """
    credential = credential.strip()
    if not credential:
        return []

    if session is not None:
        probe = build_probe(provider, session, base_url=proxy_base_url)
        return await probe.list_models(credential)

    async with AsyncSession() as own_session:
        probe = build_probe(provider, own_session, base_url=proxy_base_url)
        models = await probe.list_models(credential)

    logger.info(f"[{ProviderType(provider).value}] {len(models)} model(s) available")
    return models

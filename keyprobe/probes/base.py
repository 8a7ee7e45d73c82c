"""Provider Probe Base Module

Shared request plumbing and failure classification for provider probes.
Every probe answers with a ProbeOutcome; expected failures (HTTP errors,
malformed bodies, transport errors) never raise.
"""

# Standard library imports
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

# Third-party imports
from curl_cffi import AsyncSession, CurlError

# Local imports
from keyprobe import logger, c
from keyprobe.core.config import settings
from keyprobe.models import ProbeOutcome, ProviderType


RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "quota exceeded")

EMPTY_RESPONSE = "Empty response"
JSON_PARSE_FAILED = "JSON parse failed"
INVALID_RESPONSE_FORMAT = "Invalid response format"


def mentions_rate_limit(text: Optional[str]) -> bool:
    """Check whether an error text describes a rate limit"""
    if not text:
        return False
    lowered = text.lower()
    return "429" in text or any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def read_json(response) -> Tuple[Optional[Any], Optional[ProbeOutcome]]:
    """Parse a response body, distinguishing empty bodies from bad JSON.

    Returns:
        Tuple of (data, failure); exactly one of them is None
    """
    text = response.text
    if not text or not text.strip():
        return None, ProbeOutcome.failed(EMPTY_RESPONSE)
    try:
        return json.loads(text), None
    except ValueError:
        return None, ProbeOutcome.failed(JSON_PARSE_FAILED)


def error_message(data: Any) -> Optional[str]:
    """Extract the message of an ``{"error": ...}`` body, if any"""
    if not isinstance(data, dict) or not data.get("error"):
        return None
    error = data["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error.get("type") or error)
    return str(error)


class BaseProbe(ABC):
    """Base class for provider probes

    Attributes:
        provider: Provider handled by the probe
        default_models: Model names offered when no live listing is available
        base_url: API base URL without trailing slash
        timeout: Request timeout in seconds
    """

    provider: ProviderType
    default_models: List[str] = []

    def __init__(
        self,
        session: AsyncSession,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize the probe

        Args:
            session: Shared AsyncSession of the current run
            base_url: Proxy base URL overriding the provider default
            timeout: Request timeout overriding ``settings.probe_timeout``
        """
        self.session = session
        self.base_url = (base_url or self.default_base_url()).rstrip("/")
        self.timeout = timeout or settings.probe_timeout

    @classmethod
    @abstractmethod
    def default_base_url(cls) -> str:
        pass

    @abstractmethod
    async def _probe(self, credential: str, model: str) -> ProbeOutcome:
        """Issue the provider call and classify the response"""
        pass

    @abstractmethod
    async def list_models(self, credential: str) -> List[str]:
        """List models usable with the credential, empty on any failure"""
        pass

    async def request(
        self,
        method: str,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ):
        headers = {"Content-Type": "application/json", **(headers or {})}
        return await self.session.request(
            method=method,
            url=f"{self.base_url}{endpoint}",
            headers=headers,
            params=params,
            json=json_body,
            timeout=self.timeout,
        )

    def classify_status(self, status_code: int) -> Optional[ProbeOutcome]:
        """Map the status codes every provider shares"""
        if status_code == 401:
            return ProbeOutcome.failed("Authentication failed (401)")
        if status_code == 403:
            return ProbeOutcome.failed("Permission denied (403)")
        if status_code == 429:
            return ProbeOutcome.failed("Rate Limited (429)", rate_limited=True)
        return None

    async def probe(self, credential: str, model: str) -> ProbeOutcome:
        """Validate one credential against the provider.

        Args:
            credential: Raw API key
            model: Target model name

        Returns:
            Classified outcome of the call
        """
        if not model:
            return ProbeOutcome.failed("No model specified")

        try:
            outcome = await self._probe(credential, model)
        except asyncio.TimeoutError:
            outcome = ProbeOutcome.failed(f"Request timeout after {self.timeout}s")
        except CurlError as e:
            outcome = ProbeOutcome.failed(f"Network connection failed: {e}")

        if (
            not outcome.success
            and not outcome.rate_limited
            and mentions_rate_limit(outcome.error_detail)
        ):
            outcome.rate_limited = True

        masked = credential[:8] + "..."
        if outcome.success:
            logger.info(f"{c.GREEN}✓{c.END} [{self.provider.value}] {masked} - valid")
        else:
            logger.info(
                f"{c.RED}✗{c.END} [{self.provider.value}] {masked} - {outcome.error_detail}"
            )
        return outcome

    async def _get_json(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Optional[Any]:
        """GET an endpoint and return its JSON body, None on any failure"""
        try:
            response = await self.request("GET", endpoint, headers=headers, params=params)
        except (asyncio.TimeoutError, CurlError) as e:
            logger.warning(f"[{self.provider.value}] {endpoint} request failed: {e}")
            return None
        if not response.ok:
            return None
        data, failure = read_json(response)
        return None if failure else data

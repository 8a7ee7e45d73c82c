"""Models Module

Provides data models for credential validation runs.
"""

from keyprobe.models.credential import (
    TERMINAL_STATUSES,
    Credential,
    CredentialStatus,
    ProbeOutcome,
    ProviderType,
    TierResult,
)
from keyprobe.models.run import BatchRun, RunRequest

__all__ = [
    "TERMINAL_STATUSES",
    "Credential",
    "CredentialStatus",
    "ProbeOutcome",
    "ProviderType",
    "TierResult",
    "BatchRun",
    "RunRequest",
]

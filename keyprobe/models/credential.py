from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator

from keyprobe.exceptions import StateError


class ProviderType(str, Enum):
    """Supported credential providers"""

    OPENAI = "openai"  # OpenAI-compatible chat completions
    CLAUDE = "claude"  # Anthropic messages
    GEMINI = "gemini"  # Google generative language


class CredentialStatus(str, Enum):
    """Credential test status"""

    PENDING = "pending"
    TESTING = "testing"
    RETRYING = "retrying"
    VALID = "valid"
    INVALID = "invalid"
    RATE_LIMITED = "rate_limited"
    PAID = "paid"


TERMINAL_STATUSES: FrozenSet[CredentialStatus] = frozenset(
    {
        CredentialStatus.VALID,
        CredentialStatus.INVALID,
        CredentialStatus.RATE_LIMITED,
        CredentialStatus.PAID,
    }
)

_TRANSITIONS: Dict[CredentialStatus, FrozenSet[CredentialStatus]] = {
    CredentialStatus.PENDING: frozenset({CredentialStatus.TESTING}),
    CredentialStatus.TESTING: frozenset({CredentialStatus.RETRYING}) | TERMINAL_STATUSES,
    CredentialStatus.RETRYING: frozenset({CredentialStatus.RETRYING}) | TERMINAL_STATUSES,
}


class ProbeOutcome(BaseModel):
    """Classified result of a single provider call"""

    success: bool = False
    rate_limited: bool = False
    error_detail: Optional[str] = None
    paid_hint: Optional[bool] = None

    @classmethod
    def ok(cls, paid_hint: Optional[bool] = None) -> "ProbeOutcome":
        return cls(success=True, paid_hint=paid_hint)

    @classmethod
    def failed(cls, detail: str, rate_limited: bool = False) -> "ProbeOutcome":
        return cls(success=False, rate_limited=rate_limited, error_detail=detail)


class TierResult(BaseModel):
    """Result of a Gemini paid tier probe"""

    is_paid: bool
    reason: str


class Credential(BaseModel):
    """State of one credential under test.

    The status only moves forward:
    pending -> testing -> (retrying ->)* valid | invalid | rate_limited | paid.
    Each record is owned by exactly one runner at a time, so the transition
    methods below are the only writers.
    """

    value: str = Field(min_length=1)
    provider: ProviderType
    model: str = Field(min_length=1)

    status: CredentialStatus = CredentialStatus.PENDING
    last_error: Optional[str] = None
    attempt: int = Field(default=0, ge=0)
    is_paid_tier: Optional[bool] = None
    completed_at: Optional[datetime] = None

    @field_validator("value", "model", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Strip surrounding whitespace"""
        return v.strip() if isinstance(v, str) else v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def masked(self) -> str:
        """Credential prefix safe for logs"""
        if len(self.value) <= 8:
            return self.value[:2] + "..."
        return self.value[:8] + "..."

    def _transition(self, target: CredentialStatus) -> None:
        allowed = _TRANSITIONS.get(self.status, frozenset())
        if target not in allowed:
            raise StateError(
                f"Illegal status transition {self.status.value} -> {target.value} "
                f"for {self.masked}"
            )
        self.status = target
        if target in TERMINAL_STATUSES:
            self.completed_at = datetime.now(timezone.utc)

    def mark_testing(self) -> None:
        """Enter the first attempt"""
        self._transition(CredentialStatus.TESTING)
        self.attempt = 0

    def mark_retrying(self, attempt: int) -> None:
        """Enter retry number ``attempt`` (1-based)"""
        if attempt < 1:
            raise StateError(f"Retry attempt must be >= 1, got {attempt}")
        self._transition(CredentialStatus.RETRYING)
        self.attempt = attempt

    def finalize(self, outcome: ProbeOutcome, attempt: int) -> None:
        """Write the definitive outcome of the last attempt.

        Args:
            outcome: Outcome returned by the final probe call
            attempt: Index of that attempt (0 for the first)
        """
        self.attempt = attempt
        self.last_error = outcome.error_detail

        if outcome.success:
            if self.provider == ProviderType.GEMINI:
                self.is_paid_tier = outcome.paid_hint
            if self.provider == ProviderType.GEMINI and outcome.paid_hint:
                target = CredentialStatus.PAID
            else:
                target = CredentialStatus.VALID
        elif outcome.rate_limited:
            target = CredentialStatus.RATE_LIMITED
        else:
            target = CredentialStatus.INVALID

        self._transition(target)

    def mark_failed(self, detail: str) -> None:
        """Force a non-terminal record to invalid after an unexpected error"""
        if self.is_terminal:
            return
        if self.status == CredentialStatus.PENDING:
            self._transition(CredentialStatus.TESTING)
        self.last_error = detail
        self._transition(CredentialStatus.INVALID)

    def to_dict(self) -> dict:
        """Convert credential to dictionary for JSON serialization"""
        data = {
            "value": self.value,
            "provider": self.provider.value,
            "model": self.model,
            "status": self.status.value,
            "last_error": self.last_error,
            "attempt": self.attempt,
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
        }
        if self.provider == ProviderType.GEMINI:
            data["is_paid_tier"] = self.is_paid_tier
        return data

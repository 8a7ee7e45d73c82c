from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator

from keyprobe.models.credential import Credential, CredentialStatus, ProviderType


ProgressListener = Callable[[int, int], None]

_http_url = TypeAdapter(HttpUrl)


class RunRequest(BaseModel):
    """Configuration bundle and raw key text for one batch run"""

    provider: ProviderType
    model: str = ""
    keys: str = ""
    proxy_base_url: Optional[str] = None
    concurrency_limit: Optional[int] = Field(None, ge=1)
    max_retries: Optional[int] = Field(None, ge=0)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        """Normalize provider name to lowercase"""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("model", mode="before")
    @classmethod
    def normalize_model(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @field_validator("proxy_base_url", mode="before")
    @classmethod
    def normalize_proxy_base_url(cls, v):
        """Drop blank values and trailing slashes"""
        if not isinstance(v, str):
            return v
        v = v.strip().rstrip("/")
        return v or None

    @field_validator("proxy_base_url")
    @classmethod
    def validate_proxy_base_url(cls, v):
        """Require an http(s) URL with a host"""
        if v is None:
            return v
        try:
            _http_url.validate_python(v)
        except ValueError:
            raise ValueError(f"proxy_base_url must be an http(s) URL with a host, got {v!r}")
        return v


class BatchRun:
    """Live state of one batch run.

    Owned by the batch controller and handed to the scheduler by reference.
    ``completed_count`` only grows, so ``progress`` is monotonically
    non-decreasing for the lifetime of the run.

    Attributes:
        credentials: Records in first-seen input order
        concurrency_limit: Runners kept in flight by the main scheduler
        max_retries: Retries allowed per credential after the first attempt
        duplicate_count: Input lines dropped as duplicates
        cancel_requested: Cooperative cancellation flag
        in_progress: Set while the scheduler is driving this run
    """

    def __init__(
        self,
        credentials: List[Credential],
        concurrency_limit: int,
        max_retries: int,
        provider: ProviderType,
        model: str,
        proxy_base_url: Optional[str] = None,
        duplicate_count: int = 0,
    ):
        self.credentials = credentials
        self.concurrency_limit = concurrency_limit
        self.max_retries = max_retries
        self.provider = provider
        self.model = model
        self.proxy_base_url = proxy_base_url
        self.duplicate_count = duplicate_count

        self.total_count = len(credentials)
        self.completed_count = 0
        self.cancel_requested = False
        self.in_progress = False
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None

        self._listeners: List[ProgressListener] = []

    @property
    def progress(self) -> float:
        """Completed ratio in the range 0.0 to 1.0"""
        if self.total_count == 0:
            return 1.0
        return self.completed_count / self.total_count

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def request_cancel(self) -> None:
        self.cancel_requested = True

    def record_completion(self) -> None:
        """Count one terminal transition and notify listeners"""
        if self.completed_count < self.total_count:
            self.completed_count += 1
        self.emit_progress()

    def emit_progress(self) -> None:
        for listener in list(self._listeners):
            listener(self.completed_count, self.total_count)

    def mark_started(self) -> None:
        self.in_progress = True
        self.cancel_requested = False
        self.started_at = datetime.now(timezone.utc)

    def mark_finished(self) -> None:
        self.in_progress = False
        self.finished_at = datetime.now(timezone.utc)

    def credentials_with(self, status: CredentialStatus) -> List[Credential]:
        return [cred for cred in self.credentials if cred.status == status]

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in CredentialStatus}
        for cred in self.credentials:
            counts[cred.status.value] += 1
        return counts

    def to_dict(self) -> dict:
        """Convert run summary to dictionary for JSON serialization"""
        return {
            "provider": self.provider.value,
            "model": self.model,
            "concurrency_limit": self.concurrency_limit,
            "max_retries": self.max_retries,
            "total": self.total_count,
            "completed": self.completed_count,
            "duplicates": self.duplicate_count,
            "progress": round(self.progress, 4),
            "in_progress": self.in_progress,
            "cancel_requested": self.cancel_requested,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "counts": self.count_by_status(),
        }

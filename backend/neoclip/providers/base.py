from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional
from urllib.parse import urlparse

from neoclip.models.enums import GenerationStatus, Tier


ALL_TIERS: FrozenSet[Tier] = frozenset(Tier)
PAID_TIERS: FrozenSet[Tier] = frozenset(t for t in Tier if t.is_paid)

COMPLETED_STATUSES = frozenset({"succeeded", "completed", "complete", "success"})
FAILED_STATUSES = frozenset({"failed", "fail", "error", "errored", "canceled", "cancelled"})
QUEUED_STATUSES = frozenset({"pending", "queued", "in_queue", "starting", "staged"})


class ErrorKind(str, Enum):
    AUTH = "auth_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    TRANSPORT = "transport_error"
    NO_TASK_ID = "no_task_id"

    @property
    def retryable(self) -> bool:
        """Worth another attempt on the same provider."""
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.TIMEOUT, ErrorKind.TRANSPORT)


def classify_http_status(status_code: int) -> Optional[ErrorKind]:
    if 200 <= status_code < 300:
        return None
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.CLIENT_ERROR


@dataclass
class AttemptOutcome:
    provider: str
    attempt: int = 1
    task_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    raw_response: Optional[Any] = None

    @property
    def success(self) -> bool:
        return self.error_kind is None and bool(self.task_id)

    def summary(self) -> dict:
        return {
            "provider": self.provider,
            "attempt": self.attempt,
            "kind": self.error_kind.value if self.error_kind else "success",
            "statusCode": self.status_code,
            "message": self.error_message,
        }


def canonical_status(raw: Optional[str]) -> GenerationStatus:
    value = (raw or "").strip().lower()
    if value in COMPLETED_STATUSES:
        return GenerationStatus.COMPLETED
    if value in FAILED_STATUSES:
        return GenerationStatus.FAILED
    return GenerationStatus.PROCESSING


def dig(payload: Any, *path) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = payload
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def absolute_url(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    parsed = urlparse(candidate)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return candidate
    return None


def first_url(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        url = absolute_url(candidate)
        if url:
            return url
    return None


class ProviderDescriptor(ABC):
    """Static description of one video provider.

    Everything here is a pure mapping over request parameters or decoded JSON
    payloads; HTTP is done by the dispatcher and the poller.
    """

    name: str  # wan, pika, luma
    display_name: str
    vendor: str  # credential lookup key: replicate, fal, piapi
    tiers: FrozenSet[Tier] = ALL_TIERS
    cost_per_unit: float = 0.0
    price_type: str = "per_video"  # per_video | per_second
    max_duration: int = 10
    estimated_seconds: int = 60

    def credential(self, credentials: Mapping[str, str]) -> Optional[str]:
        return credentials.get(self.vendor) or None

    def supports_tier(self, tier: Tier) -> bool:
        return tier in self.tiers

    def clamp_length(self, length: int) -> int:
        return max(1, min(int(length), self.max_duration))

    def calculate_cost(self, length: int) -> float:
        if self.price_type == "per_second":
            return round(self.cost_per_unit * self.clamp_length(length), 6)
        return self.cost_per_unit

    @abstractmethod
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        pass

    @abstractmethod
    def create_url(self) -> str:
        pass

    @abstractmethod
    def build_request(self, prompt: str, length: int) -> dict:
        pass

    @abstractmethod
    def extract_task_id(self, payload: Any) -> Optional[str]:
        pass

    @abstractmethod
    def status_url(self, task_id: str) -> str:
        pass

    def result_endpoint(self, task_id: str) -> Optional[str]:
        """Separate endpoint holding the output, for providers whose status
        payload never carries it."""
        return None

    @abstractmethod
    def raw_status(self, payload: Any) -> Optional[str]:
        pass

    def classify_status(self, payload: Any) -> GenerationStatus:
        return canonical_status(self.raw_status(payload))

    @abstractmethod
    def extract_result_url(self, payload: Any) -> Optional[str]:
        pass

    @abstractmethod
    def extract_error(self, payload: Any) -> Optional[str]:
        pass

    def estimate_progress(self, payload: Any) -> Optional[int]:
        raw = (self.raw_status(payload) or "").strip().lower()
        status = canonical_status(raw)
        if status == GenerationStatus.COMPLETED:
            return 100
        if status == GenerationStatus.FAILED:
            return None
        if raw in QUEUED_STATUSES:
            return 10
        return 50

    def describe(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "vendor": self.vendor,
            "tiers": sorted(t.value for t in self.tiers),
            "pricing": {self.price_type: self.cost_per_unit},
            "max_duration": self.max_duration,
            "estimated_seconds": self.estimated_seconds,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

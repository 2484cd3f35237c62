from enum import Enum


class Tier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def is_paid(self) -> bool:
        return self is not Tier.FREE

    @property
    def rank(self) -> int:
        return list(Tier).index(self)

    def covered_by(self) -> list:
        """Stored tiers entitled to request this one."""
        return [t.value for t in Tier if t.rank >= self.rank]


class GenerationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED, GenerationStatus.CANCELLED)

from neoclip.models.base import Base, TimestampMixin, UUIDMixin
from neoclip.models.enums import Tier, GenerationStatus
from neoclip.models.user import User
from neoclip.models.generation import Generation
from neoclip.models.generation_event import GenerationEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Tier",
    "GenerationStatus",
    "User",
    "Generation",
    "GenerationEvent",
]

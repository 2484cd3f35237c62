from neoclip.services.dispatch import DispatchResult, TaskCreator
from neoclip.services.generation import GenerationService
from neoclip.services.generations import GenerationStore
from neoclip.services.poller import PollResult, StatusPoller
from neoclip.services.quota import QuotaLedger, Reservation, UsageSnapshot

__all__ = [
    "DispatchResult",
    "GenerationService",
    "GenerationStore",
    "PollResult",
    "QuotaLedger",
    "Reservation",
    "StatusPoller",
    "TaskCreator",
    "UsageSnapshot",
]

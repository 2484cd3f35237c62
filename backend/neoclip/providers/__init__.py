from neoclip.providers.base import (
    AttemptOutcome,
    ErrorKind,
    ProviderDescriptor,
    canonical_status,
    classify_http_status,
)
from neoclip.providers.registry import ProviderRegistry, build_registry
from neoclip.providers.replicate import WanDescriptor, MinimaxDescriptor
from neoclip.providers.fal import PikaDescriptor
from neoclip.providers.piapi import LumaDescriptor

__all__ = [
    "AttemptOutcome",
    "ErrorKind",
    "ProviderDescriptor",
    "canonical_status",
    "classify_http_status",
    "ProviderRegistry",
    "build_registry",
    "WanDescriptor",
    "MinimaxDescriptor",
    "PikaDescriptor",
    "LumaDescriptor",
]

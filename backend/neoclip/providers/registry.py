from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Type

from neoclip.models.enums import Tier
from neoclip.providers.base import ProviderDescriptor
from neoclip.providers.fal import PikaDescriptor
from neoclip.providers.piapi import LumaDescriptor
from neoclip.providers.replicate import MinimaxDescriptor, WanDescriptor


DEFAULT_DESCRIPTORS: Sequence[Type[ProviderDescriptor]] = (
    WanDescriptor,
    PikaDescriptor,
    LumaDescriptor,
    MinimaxDescriptor,
)


class ProviderRegistry:
    """Provider key -> descriptor, plus the per-tier fallback chains."""

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor] = (),
        chains: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        self._chains: Dict[Tier, tuple] = {}
        for descriptor in descriptors:
            self.register(descriptor)
        for tier_name, keys in (chains or {}).items():
            self.set_chain(Tier(tier_name), keys)

    def register(self, descriptor: ProviderDescriptor) -> ProviderDescriptor:
        if descriptor.name in self._descriptors:
            raise ValueError(f"Provider already registered: {descriptor.name}")
        self._descriptors[descriptor.name] = descriptor
        return descriptor

    def set_chain(self, tier: Tier, keys: Sequence[str]) -> None:
        chain = []
        for key in keys:
            descriptor = self._descriptors.get(key)
            if descriptor is None:
                raise ValueError(f"Fallback chain for {tier.value} references unknown provider: {key}")
            if not descriptor.supports_tier(tier):
                raise ValueError(f"Provider {key} is not eligible for tier {tier.value}")
            chain.append(descriptor)
        self._chains[tier] = tuple(chain)

    def get(self, key: str) -> Optional[ProviderDescriptor]:
        return self._descriptors.get(key)

    def chain_for(self, tier: Tier) -> tuple:
        return self._chains.get(tier, ())

    def list_descriptors(self, tier: Optional[Tier] = None) -> List[dict]:
        return [
            d.describe()
            for d in self._descriptors.values()
            if tier is None or d.supports_tier(tier)
        ]

    def __contains__(self, key: str) -> bool:
        return key in self._descriptors


def build_registry(chains: Mapping[str, Sequence[str]]) -> ProviderRegistry:
    return ProviderRegistry(
        descriptors=[descriptor_class() for descriptor_class in DEFAULT_DESCRIPTORS],
        chains=chains,
    )

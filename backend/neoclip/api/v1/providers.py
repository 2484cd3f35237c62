from typing import Optional
from fastapi import APIRouter, Depends, Query

from neoclip.api.deps import get_registry
from neoclip.models.enums import Tier
from neoclip.providers.registry import ProviderRegistry

router = APIRouter()


@router.get("")
async def list_providers(
    tier: Optional[Tier] = Query(None, description="Filter by tier: free, basic, pro, enterprise"),
    registry: ProviderRegistry = Depends(get_registry),
):
    providers = registry.list_descriptors(tier)
    body = {"success": True, "providers": providers}
    if tier is not None:
        # the order dispatch walks for this tier
        body["chain"] = [d.name for d in registry.chain_for(tier)]
    return body

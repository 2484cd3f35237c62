from typing import AsyncIterator
import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neoclip.config import Settings, get_settings
from neoclip.database import get_db
from neoclip.providers.registry import ProviderRegistry
from neoclip.services.generation import GenerationService


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_generation_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    registry: ProviderRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> GenerationService:
    return GenerationService(db=db, settings=settings, registry=registry, client=client)

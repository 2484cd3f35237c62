import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from neoclip.api.deps import get_generation_service
from neoclip.config import Settings, get_settings
from neoclip.models.enums import Tier
from neoclip.services.generation import GenerationService

router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    prompt: str = Field(min_length=1, max_length=500)
    user_id: uuid.UUID
    tier: Tier = Tier.FREE
    length: int = Field(default=10, ge=1, le=60)

    @field_validator("prompt")
    @classmethod
    def strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Prompt is required")
        return value


class GenerateResponse(CamelModel):
    success: bool = True
    status: str = "processing"
    generation_id: uuid.UUID
    task_id: str
    provider: str
    provider_name: str
    remaining_free: Optional[int] = None
    poll_url: str
    estimated_time: int
    needs_ad: bool
    poll_interval: int


class PollResponse(CamelModel):
    success: bool = True
    generation_id: uuid.UUID
    provider: Optional[str] = None
    status: str
    progress: Optional[int] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    elapsed: int


@router.post("/generate", response_model=GenerateResponse)
async def generate_video(
    data: GenerateRequest,
    service: GenerationService = Depends(get_generation_service),
    settings: Settings = Depends(get_settings),
):
    created = await service.create(data.user_id, data.prompt, data.tier, data.length)
    return GenerateResponse(
        generation_id=created.generation_id,
        task_id=created.task_id,
        provider=created.provider_key,
        provider_name=created.provider_name,
        remaining_free=created.remaining_free,
        poll_url=f"{settings.API_PREFIX}/poll?generationId={created.generation_id}",
        estimated_time=created.estimated_seconds,
        needs_ad=created.needs_ad,
        poll_interval=settings.POLL_INTERVAL_SECONDS,
    )


@router.get("/poll", response_model=PollResponse, response_model_exclude_none=True)
async def poll_generation(
    generation_id: uuid.UUID = Query(alias="generationId"),
    service: GenerationService = Depends(get_generation_service),
):
    view = await service.poll(generation_id)
    return PollResponse(
        generation_id=view.generation_id,
        provider=view.provider,
        status=view.status.value,
        progress=view.progress,
        video_url=view.video_url,
        error=view.error,
        error_code=view.error_code,
        elapsed=view.elapsed,
    )

import uuid
from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from neoclip.api.deps import get_generation_service
from neoclip.api.v1.video import CamelModel
from neoclip.services.generation import GenerationService

router = APIRouter()


class GenerationItem(CamelModel):
    id: uuid.UUID
    status: str
    prompt: str
    tier: str
    provider: Optional[str] = None
    provider_name: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class StatusResponse(CamelModel):
    success: bool = True
    user_id: uuid.UUID
    tier: str
    free_used: int
    free_limit: int
    free_remaining: int
    paid_used: int
    resets_at: date
    days_until_reset: int
    generations: List[GenerationItem]


@router.get("/status", response_model=StatusResponse)
async def get_user_status(
    user_id: uuid.UUID = Query(alias="userId"),
    limit: int = Query(default=10, ge=1, le=50),
    service: GenerationService = Depends(get_generation_service),
):
    status = await service.status(user_id, limit=limit)
    usage = status.usage
    return StatusResponse(
        user_id=usage.user_id,
        tier=usage.tier,
        free_used=usage.free_used,
        free_limit=usage.free_limit,
        free_remaining=usage.free_remaining,
        paid_used=usage.paid_used,
        resets_at=usage.resets_at,
        days_until_reset=status.days_until_reset,
        generations=[
            GenerationItem(
                id=g.id,
                status=g.status,
                prompt=g.prompt,
                tier=g.tier,
                provider=g.provider_key,
                provider_name=g.provider_name,
                video_url=g.video_url,
                error=g.error,
                created_at=g.created_at,
                completed_at=g.completed_at,
            )
            for g in status.generations
        ],
    )

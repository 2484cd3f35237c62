import uuid
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from neoclip.models.generation_event import GenerationEvent


class EventType:
    CREATED = "created"
    SENT_TO_PROVIDER = "sent_to_provider"
    POLL = "poll"
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


async def log_event(
    db: AsyncSession,
    generation_id: uuid.UUID,
    event_type: str,
    external_status: Optional[str] = None,
    response_data: Optional[dict] = None,
    error_message: Optional[str] = None,
) -> GenerationEvent:
    event = GenerationEvent(
        id=uuid.uuid4(),
        generation_id=generation_id,
        event_type=event_type,
        external_status=external_status[:50] if external_status else None,
        response_data=response_data,
        error_message=error_message,
    )
    db.add(event)
    await db.flush()
    return event


async def log_sent_to_provider(
    db: AsyncSession,
    generation_id: uuid.UUID,
    provider: str,
    task_id: str,
    attempts: list,
    raw_response: Any = None,
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.SENT_TO_PROVIDER,
        external_status="starting",
        response_data={
            "provider": provider,
            "task_id": task_id,
            "attempts": attempts,
            "raw": raw_response,
        },
    )


async def log_poll(
    db: AsyncSession,
    generation_id: uuid.UUID,
    poll_number: int,
    external_status: Optional[str],
    raw_response: Any = None,
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.POLL,
        external_status=external_status,
        response_data={"poll_number": poll_number, "raw": raw_response},
    )


async def log_completed(
    db: AsyncSession,
    generation_id: uuid.UUID,
    video_url: str,
    raw_response: Any = None,
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.COMPLETED,
        external_status="succeeded",
        response_data={"video_url": video_url, "raw": raw_response},
    )


async def log_failed(
    db: AsyncSession,
    generation_id: uuid.UUID,
    error_code: str,
    error_message: str,
    raw_response: Any = None,
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.FAILED,
        external_status="failed",
        error_message=error_message,
        response_data={"error_code": error_code, "raw": raw_response},
    )


async def log_exhausted(
    db: AsyncSession,
    generation_id: uuid.UUID,
    attempts: list,
    last_error: Optional[str],
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.EXHAUSTED,
        error_message=last_error,
        response_data={"attempts": attempts},
    )


async def log_created(
    db: AsyncSession,
    generation_id: uuid.UUID,
    prompt: str,
    tier: str,
    length: int,
) -> GenerationEvent:
    return await log_event(
        db,
        generation_id,
        EventType.CREATED,
        response_data={"prompt": prompt[:500], "tier": tier, "length": length},
    )

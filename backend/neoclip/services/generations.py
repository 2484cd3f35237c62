import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from neoclip.models.enums import GenerationStatus, Tier
from neoclip.models.generation import Generation
from neoclip.models.user import User
from neoclip.services.dispatch import DispatchResult
from neoclip.utils.datetime import utc_now


@dataclass(frozen=True)
class PollCounters:
    poll_count: int
    empty_result_count: int


class GenerationStore:
    """Generation rows. Terminal writes are conditional on the row still processing."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_processing(
        self,
        user_id: uuid.UUID,
        prompt: str,
        tier: Tier,
        dispatched: DispatchResult,
        now: Optional[datetime] = None,
    ) -> Generation:
        now = now or utc_now()
        generation = Generation(
            id=uuid.uuid4(),
            user_id=user_id,
            prompt=prompt,
            tier=tier.value,
            length=dispatched.length,
            provider_key=dispatched.provider_key,
            provider_name=dispatched.provider_name,
            provider_task_id=dispatched.provider_task_id,
            status=GenerationStatus.PROCESSING.value,
            cost=Decimal(str(dispatched.cost)),
            poll_count=0,
            empty_result_count=0,
            created_at=now,
            started_at=now,
        )
        self.db.add(generation)
        await self.db.flush()
        return generation

    async def create_failed(
        self,
        user_id: uuid.UUID,
        prompt: str,
        tier: Tier,
        length: int,
        error: str,
        error_code: str,
        now: Optional[datetime] = None,
    ) -> Generation:
        now = now or utc_now()
        generation = Generation(
            id=uuid.uuid4(),
            user_id=user_id,
            prompt=prompt,
            tier=tier.value,
            length=length,
            status=GenerationStatus.FAILED.value,
            error=error,
            error_code=error_code,
            cost=Decimal("0"),
            poll_count=0,
            empty_result_count=0,
            created_at=now,
            completed_at=now,
        )
        self.db.add(generation)
        await self.db.flush()
        return generation

    async def get(self, generation_id: uuid.UUID) -> Optional[Generation]:
        result = await self.db.execute(
            select(Generation)
            .where(Generation.id == generation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def record_poll(self, generation_id: uuid.UUID, empty_result: bool = False) -> Optional[PollCounters]:
        values = {"poll_count": Generation.poll_count + 1}
        if empty_result:
            values["empty_result_count"] = Generation.empty_result_count + 1
        result = await self.db.execute(
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.status == GenerationStatus.PROCESSING.value,
            )
            .values(**values)
            .returning(Generation.poll_count, Generation.empty_result_count)
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return PollCounters(poll_count=row.poll_count, empty_result_count=row.empty_result_count)

    async def finalize(
        self,
        generation_id: uuid.UUID,
        status: GenerationStatus,
        video_url: Optional[str] = None,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        """Write the terminal state. Returns False if another writer got there first."""
        if status == GenerationStatus.COMPLETED:
            if not video_url:
                raise ValueError("A completed generation needs a video URL")
            error = error_code = None
        elif status in (GenerationStatus.FAILED, GenerationStatus.CANCELLED):
            video_url = None
            if status == GenerationStatus.FAILED and not error:
                error = "Video generation failed"
            if status == GenerationStatus.CANCELLED:
                error = error_code = None
        else:
            raise ValueError(f"Not a terminal status: {status.value}")

        result = await self.db.execute(
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.status == GenerationStatus.PROCESSING.value,
            )
            .values(
                status=status.value,
                video_url=video_url,
                error=error,
                error_code=error_code,
                completed_at=completed_at or utc_now(),
            )
            .returning(Generation.user_id)
            .execution_options(synchronize_session=False)
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            return False

        if status == GenerationStatus.COMPLETED:
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(total_generated=User.total_generated + 1)
                .execution_options(synchronize_session=False)
            )
        return True

    async def list_for_user(self, user_id: uuid.UUID, limit: int = 20) -> List[Generation]:
        result = await self.db.execute(
            select(Generation)
            .where(Generation.user_id == user_id)
            .order_by(desc(Generation.created_at))
            .limit(limit)
        )
        return list(result.scalars().all())

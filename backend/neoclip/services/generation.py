import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional
import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from neoclip.config import Settings
from neoclip.exceptions import AllProvidersExhausted, GenerationNotFound, InvalidInput
from neoclip.logging import logger
from neoclip.models.enums import GenerationStatus, Tier
from neoclip.models.generation import Generation
from neoclip.providers.registry import ProviderRegistry
from neoclip.services.dispatch import TaskCreator
from neoclip.services.generation_events import (
    log_completed,
    log_created,
    log_exhausted,
    log_failed,
    log_poll,
    log_sent_to_provider,
)
from neoclip.services.generations import GenerationStore
from neoclip.services.poller import PollResult, StatusPoller
from neoclip.services.quota import QuotaLedger, UsageSnapshot
from neoclip.utils.datetime import utc_now


MAX_PROMPT_LENGTH = 500


@dataclass
class CreatedGeneration:
    generation_id: uuid.UUID
    task_id: str
    provider_key: str
    provider_name: str
    remaining_free: Optional[int]
    estimated_seconds: int
    needs_ad: bool
    length: int


@dataclass
class GenerationView:
    generation_id: uuid.UUID
    provider: Optional[str]
    status: GenerationStatus
    elapsed: int
    progress: Optional[int] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class UserStatus:
    usage: UsageSnapshot
    days_until_reset: int
    generations: List[Generation] = field(default_factory=list)


class GenerationService:
    """Creation and polling flows: quota, dispatch, record, terminal transitions."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        registry: ProviderRegistry,
        client: httpx.AsyncClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        credentials = settings.provider_credentials()

        self.ledger = QuotaLedger(db, free_limit=settings.FREE_MONTHLY_LIMIT, clock=clock)
        self.creator = TaskCreator(
            registry,
            client,
            credentials,
            max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
            retry_delay=settings.PROVIDER_RETRY_DELAY_SECONDS,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
        self.poller = StatusPoller(registry, client, credentials, timeout=settings.PROVIDER_TIMEOUT_SECONDS)
        self.store = GenerationStore(db)

    async def create(self, user_id: uuid.UUID, prompt: str, tier: Tier, length: int) -> CreatedGeneration:
        prompt = (prompt or "").strip()
        if not prompt:
            raise InvalidInput("Prompt is required")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise InvalidInput(f"Prompt must be at most {MAX_PROMPT_LENGTH} characters")

        reservation = await self.ledger.reserve(user_id, tier)

        try:
            dispatched = await self.creator.dispatch(prompt, tier, length)
        except AllProvidersExhausted as e:
            await self.ledger.rollback(reservation)
            await self._record_exhausted(user_id, prompt, tier, length, e)
            raise
        except Exception:
            await self.ledger.rollback(reservation)
            raise

        generation = await self.store.create_processing(user_id, prompt, tier, dispatched, now=self.clock())
        await log_created(self.db, generation.id, prompt, tier.value, dispatched.length)
        await log_sent_to_provider(
            self.db,
            generation.id,
            dispatched.provider_key,
            dispatched.provider_task_id,
            [a.summary() for a in dispatched.attempts],
            dispatched.raw_response,
        )
        await self.ledger.commit(reservation)
        await self.db.commit()

        logger.info(
            "generation_created",
            generation_id=str(generation.id),
            user_id=str(user_id),
            tier=tier.value,
            provider=dispatched.provider_key,
            task_id=dispatched.provider_task_id,
            attempts=len(dispatched.attempts),
        )

        return CreatedGeneration(
            generation_id=generation.id,
            task_id=dispatched.provider_task_id,
            provider_key=dispatched.provider_key,
            provider_name=dispatched.provider_name,
            remaining_free=reservation.remaining_free,
            estimated_seconds=dispatched.estimated_seconds,
            needs_ad=tier == Tier.FREE,
            length=dispatched.length,
        )

    async def _record_exhausted(
        self,
        user_id: uuid.UUID,
        prompt: str,
        tier: Tier,
        length: int,
        exc: AllProvidersExhausted,
    ) -> None:
        # Audit row only; the caller still gets the dispatch error.
        try:
            generation = await self.store.create_failed(
                user_id,
                prompt,
                tier,
                length,
                error=exc.last_error or exc.message,
                error_code="ALL_PROVIDERS_EXHAUSTED",
                now=self.clock(),
            )
            await log_exhausted(self.db, generation.id, exc.attempts, exc.last_error)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("exhausted_record_failed", user_id=str(user_id), error=str(e))

    async def poll(self, generation_id: uuid.UUID) -> GenerationView:
        generation = await self.store.get(generation_id)
        if generation is None:
            raise GenerationNotFound(generation_id)

        if generation.status != GenerationStatus.PROCESSING.value:
            return self._view(generation)

        now = self.clock()
        age = (now - generation.created_at).total_seconds()

        if age > self.settings.POLL_TIMEOUT_SECONDS:
            return await self._finish(
                generation,
                GenerationStatus.FAILED,
                error=f"Generation timed out after {self.settings.POLL_TIMEOUT_SECONDS} seconds",
                error_code="POLL_TIMEOUT",
            )

        if generation.poll_count >= self.settings.MAX_SERVER_POLLS:
            return await self._finish(
                generation,
                GenerationStatus.FAILED,
                error=f"Provider did not finish within {self.settings.MAX_SERVER_POLLS} status checks",
                error_code="POLL_LIMIT",
            )

        result = await self.poller.check(generation)
        logger.info(
            "generation_polled",
            generation_id=str(generation.id),
            provider=generation.provider_key,
            raw_status=result.raw_status,
            status=result.status.value,
            empty_result=result.empty_result,
            check_failed=result.check_failed,
        )

        if result.status in (GenerationStatus.COMPLETED, GenerationStatus.FAILED):
            return await self._finish(
                generation,
                result.status,
                video_url=result.video_url,
                error=result.error,
                error_code=result.error_code,
                raw_response=result.raw_response,
            )

        counters = await self.store.record_poll(generation.id, empty_result=result.empty_result)
        if counters is None:
            # finalized by a concurrent poll
            await self.db.commit()
            return self._view(await self.store.get(generation.id))

        await log_poll(self.db, generation.id, counters.poll_count, result.raw_status, result.raw_response)

        if result.empty_result and counters.empty_result_count >= self.settings.MAX_EMPTY_RESULT_POLLS:
            return await self._finish(
                generation,
                GenerationStatus.FAILED,
                error=(
                    "Provider reported completion but returned no video URL "
                    f"after {counters.empty_result_count} checks"
                ),
                error_code="EMPTY_RESULT",
                raw_response=result.raw_response,
            )

        await self.db.commit()
        return self._processing_view(generation, result, int(age))

    async def _finish(
        self,
        generation: Generation,
        status: GenerationStatus,
        video_url: Optional[str] = None,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
        raw_response: Optional[Any] = None,
    ) -> GenerationView:
        won = await self.store.finalize(
            generation.id,
            status,
            video_url=video_url,
            error=error,
            error_code=error_code,
            completed_at=self.clock(),
        )
        if won:
            if status == GenerationStatus.COMPLETED:
                await log_completed(self.db, generation.id, video_url, raw_response)
            else:
                await log_failed(self.db, generation.id, error_code or "", error or "", raw_response)
            logger.info(
                "generation_finalized",
                generation_id=str(generation.id),
                provider=generation.provider_key,
                status=status.value,
                error_code=error_code,
            )
        await self.db.commit()

        return self._view(await self.store.get(generation.id))

    def _view(self, generation: Generation) -> GenerationView:
        status = generation.canonical_status
        if generation.is_terminal and generation.completed_at is not None:
            end = generation.completed_at
        else:
            end = self.clock()
        elapsed = max(0, int((end - generation.created_at).total_seconds()))

        progress = None
        if status == GenerationStatus.COMPLETED:
            progress = 100
        elif status == GenerationStatus.PENDING:
            progress = 0

        return GenerationView(
            generation_id=generation.id,
            provider=generation.provider_key,
            status=status,
            elapsed=elapsed,
            progress=progress,
            video_url=generation.video_url,
            error=generation.error,
            error_code=generation.error_code,
        )

    def _processing_view(self, generation: Generation, result: PollResult, elapsed: int) -> GenerationView:
        return GenerationView(
            generation_id=generation.id,
            provider=generation.provider_key,
            status=GenerationStatus.PROCESSING,
            elapsed=max(0, elapsed),
            progress=result.progress,
        )

    async def status(self, user_id: uuid.UUID, limit: int = 10) -> UserStatus:
        usage = await self.ledger.get_usage(user_id)
        generations = await self.store.list_for_user(user_id, limit=limit)
        days_until_reset = max(0, (usage.resets_at - self.clock().date()).days)
        return UserStatus(usage=usage, days_until_reset=days_until_reset, generations=generations)

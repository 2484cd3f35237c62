import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from neoclip.exceptions import QuotaExceeded, QuotaReservationError, TierNotAllowed, UserNotFound
from neoclip.logging import logger
from neoclip.models.enums import Tier
from neoclip.models.user import User
from neoclip.utils.datetime import first_day_of_next_month, utc_now


@dataclass(frozen=True)
class Reservation:
    user_id: uuid.UUID
    tier: Tier
    previous_value: int
    free_limit: int

    @property
    def remaining_free(self) -> Optional[int]:
        if self.tier.is_paid:
            return None
        return max(0, self.free_limit - (self.previous_value + 1))


@dataclass(frozen=True)
class UsageSnapshot:
    user_id: uuid.UUID
    tier: str
    free_used: int
    paid_used: int
    free_limit: int
    resets_at: date

    @property
    def free_remaining(self) -> int:
        return max(0, self.free_limit - self.free_used)


class QuotaLedger:
    """Monthly usage counters, reserved before dispatch and compensated on exhaustion.

    Every counter change is a single conditional UPDATE so concurrent requests
    from one user are serialized by the database, never by application reads.
    """

    def __init__(
        self,
        db: AsyncSession,
        free_limit: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.free_limit = free_limit
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    async def _apply_reset(self, user_id: uuid.UUID, today: date) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id, User.resets_at <= today)
            .values(free_used=0, paid_used=0, resets_at=first_day_of_next_month(today))
            .execution_options(synchronize_session=False)
        )

    async def reserve(self, user_id: uuid.UUID, tier: Tier) -> Reservation:
        today = self._today()
        try:
            await self._apply_reset(user_id, today)

            if tier.is_paid:
                stmt = (
                    update(User)
                    .where(User.id == user_id, User.tier.in_(tier.covered_by()))
                    .values(paid_used=User.paid_used + 1)
                    .returning(User.paid_used)
                )
            else:
                stmt = (
                    update(User)
                    .where(User.id == user_id, User.free_used < self.free_limit)
                    .values(free_used=User.free_used + 1)
                    .returning(User.free_used)
                )
            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            new_value = result.scalar_one_or_none()

            current = None
            if new_value is None:
                used = await self.db.execute(select(User.tier, User.free_used).where(User.id == user_id))
                current = used.one_or_none()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("quota_reserve_failed", user_id=str(user_id), tier=tier.value, error=str(e))
            raise QuotaReservationError() from e

        if new_value is None:
            if current is None:
                raise UserNotFound(user_id)
            if tier.is_paid:
                logger.info("quota_tier_rejected", user_id=str(user_id), requested=tier.value, allowed=current.tier)
                raise TierNotAllowed(requested=tier.value, allowed=current.tier)
            free_used = current.free_used
            logger.info("quota_exceeded", user_id=str(user_id), free_used=free_used, free_limit=self.free_limit)
            raise QuotaExceeded(free_used=free_used, free_limit=self.free_limit)

        reservation = Reservation(
            user_id=user_id,
            tier=tier,
            previous_value=new_value - 1,
            free_limit=self.free_limit,
        )
        logger.info(
            "quota_reserved",
            user_id=str(user_id),
            tier=tier.value,
            previous_value=reservation.previous_value,
            remaining_free=reservation.remaining_free,
        )
        return reservation

    async def commit(self, reservation: Reservation) -> None:
        # The increment already happened in reserve().
        return None

    async def rollback(self, reservation: Reservation) -> bool:
        column = User.paid_used if reservation.tier.is_paid else User.free_used
        try:
            result = await self.db.execute(
                update(User)
                .where(User.id == reservation.user_id, column > reservation.previous_value)
                .values({column: column - 1})
                .returning(column)
                .execution_options(synchronize_session=False)
            )
            restored = result.scalar_one_or_none()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "quota_rollback_failed",
                user_id=str(reservation.user_id),
                tier=reservation.tier.value,
                error=str(e),
            )
            return False

        logger.info(
            "quota_rolled_back",
            user_id=str(reservation.user_id),
            tier=reservation.tier.value,
            restored_to=restored,
        )
        return restored is not None

    async def get_usage(self, user_id: uuid.UUID) -> UsageSnapshot:
        await self._apply_reset(user_id, self._today())
        result = await self.db.execute(
            select(User.tier, User.free_used, User.paid_used, User.resets_at).where(User.id == user_id)
        )
        row = result.one_or_none()
        await self.db.commit()
        if row is None:
            raise UserNotFound(user_id)
        return UsageSnapshot(
            user_id=user_id,
            tier=row.tier,
            free_used=row.free_used,
            paid_used=row.paid_used,
            free_limit=self.free_limit,
            resets_at=row.resets_at,
        )

    async def reset_expired(self, today: Optional[date] = None) -> int:
        today = today or self._today()
        result = await self.db.execute(
            update(User)
            .where(User.resets_at <= today)
            .values(free_used=0, paid_used=0, resets_at=first_day_of_next_month(today))
            .returning(User.id)
            .execution_options(synchronize_session=False)
        )
        reset_count = len(result.all())
        await self.db.commit()
        return reset_count

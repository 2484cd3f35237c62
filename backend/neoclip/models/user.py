from datetime import date
from sqlalchemy import String, Integer, Date
from sqlalchemy.orm import Mapped, mapped_column, relationship

from neoclip.models.base import Base, UUIDMixin, TimestampMixin
from neoclip.models.enums import Tier
from neoclip.utils.datetime import utc_now, first_day_of_next_month


def _next_reset() -> date:
    return first_day_of_next_month(utc_now().date())


class User(Base, UUIDMixin, TimestampMixin):
    """Quota state. Rows are created by registration, outside this service."""

    __tablename__ = "users"

    tier: Mapped[str] = mapped_column(String(20), default=Tier.FREE.value)
    free_used: Mapped[int] = mapped_column(Integer, default=0)
    paid_used: Mapped[int] = mapped_column(Integer, default=0)
    resets_at: Mapped[date] = mapped_column(Date, default=_next_reset)
    total_generated: Mapped[int] = mapped_column(Integer, default=0)

    generations: Mapped[list["Generation"]] = relationship(back_populates="user")

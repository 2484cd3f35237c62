import uuid
from decimal import Decimal
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Integer, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from neoclip.models.base import Base, UUIDMixin
from neoclip.models.enums import GenerationStatus
from neoclip.utils.datetime import utc_now


class Generation(Base, UUIDMixin):
    __tablename__ = "generations"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    provider_task_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    prompt: Mapped[str] = mapped_column(Text)
    tier: Mapped[str] = mapped_column(String(20))
    length: Mapped[int] = mapped_column(Integer, default=10)
    provider_key: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    provider_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=GenerationStatus.PENDING.value)
    video_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cost: Mapped[Decimal] = mapped_column(DECIMAL(10, 6), default=0)

    poll_count: Mapped[int] = mapped_column(Integer, default=0)
    empty_result_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    user: Mapped["User"] = relationship(back_populates="generations")
    events: Mapped[list["GenerationEvent"]] = relationship(
        back_populates="generation", cascade="all, delete-orphan"
    )

    @property
    def canonical_status(self) -> GenerationStatus:
        return GenerationStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.canonical_status.is_terminal

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from neoclip.models.base import Base, UUIDMixin
from neoclip.utils.datetime import utc_now


class GenerationEvent(Base, UUIDMixin):
    __tablename__ = "generation_events"

    generation_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("generations.id", ondelete="CASCADE"))

    event_type: Mapped[str] = mapped_column(String(50))
    external_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    response_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    generation: Mapped["Generation"] = relationship(back_populates="events")

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from toothchart.models.base import Base, TimestampMixin


class QueueType(str, enum.Enum):
    appointment = "appointment"
    walk_in = "walk_in"


class QueuePriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    emergency = "emergency"


class QueueStatus(str, enum.Enum):
    waiting = "waiting"
    in_service = "in_service"
    done = "done"
    left = "left"


class QueueEntry(Base, TimestampMixin):
    __tablename__ = "queue_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    appointment_id: Mapped[int | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)
    queue_type: Mapped[QueueType] = mapped_column(Enum(QueueType, name="queue_type"), nullable=False)
    priority: Mapped[QueuePriority] = mapped_column(
        Enum(QueuePriority, name="queue_priority"), default=QueuePriority.medium, nullable=False
    )
    status: Mapped[QueueStatus] = mapped_column(
        Enum(QueueStatus, name="queue_status"), default=QueueStatus.waiting, nullable=False
    )
    checked_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_wait_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    appointment = relationship("Appointment", back_populates="queue_entries")

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from toothchart.models.appointment import AppointmentStatus
from toothchart.models.queue import QueuePriority, QueueStatus, QueueType


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    clinician: Optional[str] = None
    starts_at: datetime
    status: AppointmentStatus
    checked_in_at: Optional[datetime] = None
    procedure_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    no_show: bool


class QueueStatusUpdate(BaseModel):
    status: QueueStatus


class WalkInCreate(BaseModel):
    patient_id: Optional[str] = Field(default=None, max_length=64)
    priority: QueuePriority = QueuePriority.medium
    reason: Optional[str] = Field(default=None, max_length=500)


class QueueEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: Optional[str] = None
    appointment_id: Optional[int] = None
    queue_type: QueueType
    priority: QueuePriority
    status: QueueStatus
    checked_in_at: datetime
    position: Optional[int] = None
    estimated_wait_minutes: Optional[int] = None
    notes: Optional[str] = None

from toothchart.models.base import Base
from toothchart.models.user import Role, User
from toothchart.models.audit_log import AuditLog
from toothchart.models.dental_chart import DentalChartRecord
from toothchart.models.appointment import Appointment, AppointmentStatus
from toothchart.models.queue import QueueEntry, QueuePriority, QueueStatus, QueueType

__all__ = [
    "Base",
    "Role",
    "User",
    "AuditLog",
    "DentalChartRecord",
    "Appointment",
    "AppointmentStatus",
    "QueueEntry",
    "QueuePriority",
    "QueueStatus",
    "QueueType",
]

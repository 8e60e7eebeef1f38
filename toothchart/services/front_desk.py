from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from toothchart.models.appointment import Appointment, AppointmentStatus
from toothchart.models.queue import QueueEntry, QueuePriority, QueueStatus, QueueType
from toothchart.models.user import User
from toothchart.services.audit import log_event
from toothchart.services.scheduler import JobScheduler

logger = logging.getLogger("toothchart.front_desk")

NO_SHOW_JOB = "no_show_sweep"
QUEUE_REFRESH_JOB = "queue_refresh"

_ALLOWED_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.scheduled: {AppointmentStatus.checked_in, AppointmentStatus.cancelled},
    AppointmentStatus.checked_in: {AppointmentStatus.in_procedure, AppointmentStatus.cancelled},
    AppointmentStatus.in_procedure: {AppointmentStatus.completed},
    AppointmentStatus.completed: set(),
    AppointmentStatus.cancelled: set(),
}

_STATUS_STAMPS = {
    AppointmentStatus.checked_in: "checked_in_at",
    AppointmentStatus.in_procedure: "procedure_started_at",
    AppointmentStatus.completed: "completed_at",
    AppointmentStatus.cancelled: "cancelled_at",
}


# queue status that follows each appointment status once the patient is checked in
_QUEUE_STATUS_FOR_APPOINTMENT = {
    AppointmentStatus.in_procedure: QueueStatus.in_service,
    AppointmentStatus.completed: QueueStatus.done,
    AppointmentStatus.cancelled: QueueStatus.left,
}

_QUEUE_TRANSITIONS: dict[QueueStatus, set[QueueStatus]] = {
    QueueStatus.waiting: {QueueStatus.in_service, QueueStatus.left},
    QueueStatus.in_service: {QueueStatus.done, QueueStatus.left},
    QueueStatus.done: set(),
    QueueStatus.left: set(),
}


class InvalidStatusTransition(ValueError):
    def __init__(self, current, requested, *, subject: str = "appointment") -> None:
        super().__init__(f"Cannot move {subject} from {current.value} to {requested.value}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sync_queue_entries(db: Session, appointment: Appointment, status: QueueStatus) -> None:
    active = list(
        db.scalars(
            select(QueueEntry).where(
                QueueEntry.appointment_id == appointment.id,
                QueueEntry.status.in_([QueueStatus.waiting, QueueStatus.in_service]),
            )
        )
    )
    for entry in active:
        entry.status = status
        entry.position = None
        entry.estimated_wait_minutes = None
        db.add(entry)


def update_queue_entry_status(
    db: Session,
    entry: QueueEntry,
    status: QueueStatus,
    *,
    actor: User | None = None,
) -> QueueEntry:
    """Move a queue entry along waiting -> in_service -> done, or out via ``left``.

    Walk-ins have no appointment, so this is how they leave the queue.
    """
    current = entry.status
    if status == current:
        return entry
    if status not in _QUEUE_TRANSITIONS[current]:
        raise InvalidStatusTransition(current, status, subject="queue entry")
    entry.status = status
    entry.position = None
    entry.estimated_wait_minutes = None
    db.add(entry)
    log_event(
        db,
        actor=actor,
        action=f"queue.status: {current.value} -> {status.value}",
        entity_type="queue_entry",
        entity_id=entry.id,
        after_data={"status": status.value},
    )
    db.commit()
    db.refresh(entry)
    return entry


def update_appointment_status(
    db: Session,
    appointment: Appointment,
    status: AppointmentStatus,
    *,
    actor: User | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    current = appointment.status
    if status == current:
        return appointment
    if status not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current, status)

    now = now or _utcnow()
    appointment.status = status
    setattr(appointment, _STATUS_STAMPS[status], now)
    if status == AppointmentStatus.cancelled and reason:
        appointment.cancellation_reason = reason
    db.add(appointment)
    if status == AppointmentStatus.checked_in:
        db.add(
            QueueEntry(
                patient_id=appointment.patient_id,
                appointment_id=appointment.id,
                queue_type=QueueType.appointment,
                priority=QueuePriority.medium,
                status=QueueStatus.waiting,
                checked_in_at=now,
            )
        )
    elif status in _QUEUE_STATUS_FOR_APPOINTMENT:
        _sync_queue_entries(db, appointment, _QUEUE_STATUS_FOR_APPOINTMENT[status])
    log_event(
        db,
        actor=actor,
        action=f"appointment.status: {current.value} -> {status.value}",
        entity_type="appointment",
        entity_id=str(appointment.id),
        after_data={"status": status.value},
    )
    db.commit()
    db.refresh(appointment)
    return appointment


def sweep_no_shows(
    db: Session,
    *,
    grace_minutes: int = 15,
    now: datetime | None = None,
) -> list[int]:
    now = now or _utcnow()
    cutoff = now - timedelta(minutes=grace_minutes)
    overdue = list(
        db.scalars(
            select(Appointment)
            .where(
                Appointment.status == AppointmentStatus.scheduled,
                Appointment.starts_at < cutoff,
            )
            .order_by(Appointment.starts_at.asc())
        )
    )
    for appointment in overdue:
        appointment.status = AppointmentStatus.cancelled
        appointment.cancelled_at = now
        appointment.no_show = True
        appointment.cancellation_reason = f"No-show ({grace_minutes}-minute grace period expired)"
        db.add(appointment)
        log_event(
            db,
            actor=None,
            action="appointment.no_show",
            entity_type="appointment",
            entity_id=str(appointment.id),
            after_data={"status": AppointmentStatus.cancelled.value, "no_show": True},
        )
    db.commit()
    if overdue:
        logger.info("Marked %s appointment(s) as no-show", len(overdue))
    return [appointment.id for appointment in overdue]


def waiting_queue(db: Session) -> list[QueueEntry]:
    return list(
        db.scalars(
            select(QueueEntry)
            .where(QueueEntry.status == QueueStatus.waiting)
            .order_by(QueueEntry.checked_in_at.asc(), QueueEntry.id.asc())
        )
    )


def refresh_queue_positions(db: Session, *, minutes_per_patient: int = 30) -> int:
    entries = waiting_queue(db)
    for index, entry in enumerate(entries):
        position = index + 1
        entry.position = position
        entry.estimated_wait_minutes = position * minutes_per_patient
        db.add(entry)
    db.commit()
    return len(entries)


def add_walk_in(
    db: Session,
    *,
    patient_id: str | None = None,
    priority: QueuePriority = QueuePriority.medium,
    reason: str | None = None,
    actor: User | None = None,
    now: datetime | None = None,
) -> QueueEntry:
    entry = QueueEntry(
        patient_id=patient_id,
        queue_type=QueueType.walk_in,
        priority=priority,
        status=QueueStatus.waiting,
        checked_in_at=now or _utcnow(),
        notes=reason,
    )
    db.add(entry)
    db.flush()
    log_event(
        db,
        actor=actor,
        action="queue.walk_in.added",
        entity_type="queue_entry",
        entity_id=str(entry.id),
        after_data={"priority": priority.value},
    )
    db.commit()
    db.refresh(entry)
    return entry


def _in_session(session_factory: Callable[[], Session], func: Callable, **kwargs) -> Callable[[], object]:
    def _run() -> object:
        db = session_factory()
        try:
            return func(db, **kwargs)
        finally:
            db.close()

    return _run


def register_front_desk_jobs(
    scheduler: JobScheduler,
    session_factory: Callable[[], Session],
    *,
    no_show_check_seconds: float,
    no_show_grace_minutes: int,
    queue_refresh_seconds: float,
    queue_minutes_per_patient: int,
) -> None:
    scheduler.add_job(
        NO_SHOW_JOB,
        no_show_check_seconds,
        _in_session(session_factory, sweep_no_shows, grace_minutes=no_show_grace_minutes),
    )
    scheduler.add_job(
        QUEUE_REFRESH_JOB,
        queue_refresh_seconds,
        _in_session(session_factory, refresh_queue_positions, minutes_per_patient=queue_minutes_per_patient),
    )

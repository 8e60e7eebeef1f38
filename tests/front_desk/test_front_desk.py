from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from toothchart.models.appointment import Appointment, AppointmentStatus
from toothchart.models.audit_log import AuditLog
from toothchart.models.queue import QueueEntry, QueuePriority, QueueStatus, QueueType
from toothchart.models.user import Role
from toothchart.services.front_desk import (
    InvalidStatusTransition,
    add_walk_in,
    refresh_queue_positions,
    sweep_no_shows,
    update_appointment_status,
    update_queue_entry_status,
    waiting_queue,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _appointment(db, *, patient_id="p1", minutes_from_now=0, status=AppointmentStatus.scheduled):
    appointment = Appointment(
        patient_id=patient_id,
        clinician="Dr. A",
        starts_at=NOW + timedelta(minutes=minutes_from_now),
        status=status,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def test_check_in_enqueues_appointment(db_session, clinician):
    appointment = _appointment(db_session)
    update_appointment_status(db_session, appointment, AppointmentStatus.checked_in, actor=clinician, now=NOW)

    assert appointment.status == AppointmentStatus.checked_in
    assert appointment.checked_in_at is not None
    entries = waiting_queue(db_session)
    assert len(entries) == 1
    assert entries[0].appointment_id == appointment.id
    assert entries[0].queue_type == QueueType.appointment

    audit = db_session.scalar(select(AuditLog).where(AuditLog.entity_type == "appointment"))
    assert audit.action == "appointment.status: scheduled -> checked_in"
    assert audit.actor_user_id == clinician.id


def test_full_visit_flow(db_session):
    appointment = _appointment(db_session)
    for status in (AppointmentStatus.checked_in, AppointmentStatus.in_procedure, AppointmentStatus.completed):
        update_appointment_status(db_session, appointment, status, now=NOW)
    assert appointment.status == AppointmentStatus.completed
    assert appointment.procedure_started_at is not None
    assert appointment.completed_at is not None


def _queue_entry_for(db, appointment):
    return db.scalar(select(QueueEntry).where(QueueEntry.appointment_id == appointment.id))


def test_queue_entry_follows_the_visit(db_session):
    appointment = _appointment(db_session)
    later = _appointment(db_session, patient_id="p2")
    update_appointment_status(db_session, appointment, AppointmentStatus.checked_in, now=NOW)
    update_appointment_status(db_session, later, AppointmentStatus.checked_in, now=NOW + timedelta(minutes=1))

    update_appointment_status(db_session, appointment, AppointmentStatus.in_procedure, now=NOW)
    assert _queue_entry_for(db_session, appointment).status == QueueStatus.in_service

    update_appointment_status(db_session, appointment, AppointmentStatus.completed, now=NOW)
    assert _queue_entry_for(db_session, appointment).status == QueueStatus.done

    assert refresh_queue_positions(db_session, minutes_per_patient=30) == 1
    waiting = waiting_queue(db_session)
    assert [(entry.patient_id, entry.position, entry.estimated_wait_minutes) for entry in waiting] == [
        ("p2", 1, 30)
    ]


def test_cancel_after_check_in_leaves_queue(db_session):
    appointment = _appointment(db_session)
    update_appointment_status(db_session, appointment, AppointmentStatus.checked_in, now=NOW)
    update_appointment_status(db_session, appointment, AppointmentStatus.cancelled, reason="Felt better", now=NOW)
    assert _queue_entry_for(db_session, appointment).status == QueueStatus.left
    assert waiting_queue(db_session) == []


@pytest.mark.parametrize(
    ("path", "target"),
    [
        ((), QueueStatus.done),
        ((QueueStatus.left,), QueueStatus.in_service),
        ((QueueStatus.in_service, QueueStatus.done), QueueStatus.left),
    ],
)
def test_invalid_queue_transitions_are_rejected(db_session, path, target):
    entry = add_walk_in(db_session, now=NOW)
    for step in path:
        update_queue_entry_status(db_session, entry, step)
    with pytest.raises(InvalidStatusTransition):
        update_queue_entry_status(db_session, entry, target)


@pytest.mark.parametrize(
    ("start", "target"),
    [
        (AppointmentStatus.scheduled, AppointmentStatus.completed),
        (AppointmentStatus.scheduled, AppointmentStatus.in_procedure),
        (AppointmentStatus.in_procedure, AppointmentStatus.cancelled),
        (AppointmentStatus.completed, AppointmentStatus.scheduled),
        (AppointmentStatus.cancelled, AppointmentStatus.checked_in),
    ],
)
def test_invalid_transitions_are_rejected(db_session, start, target):
    appointment = _appointment(db_session, status=start)
    with pytest.raises(InvalidStatusTransition):
        update_appointment_status(db_session, appointment, target, now=NOW)
    assert appointment.status == start


def test_same_status_is_a_noop(db_session):
    appointment = _appointment(db_session)
    update_appointment_status(db_session, appointment, AppointmentStatus.scheduled, now=NOW)
    assert db_session.scalar(select(AuditLog)) is None


def test_cancel_keeps_reason(db_session):
    appointment = _appointment(db_session)
    update_appointment_status(
        db_session, appointment, AppointmentStatus.cancelled, reason="Patient called", now=NOW
    )
    assert appointment.cancellation_reason == "Patient called"
    assert appointment.no_show is False


def test_sweep_marks_overdue_scheduled_appointments(db_session):
    overdue = _appointment(db_session, patient_id="late", minutes_from_now=-20)
    recent = _appointment(db_session, patient_id="recent", minutes_from_now=-10)
    arrived = _appointment(db_session, patient_id="arrived", minutes_from_now=-60)
    update_appointment_status(db_session, arrived, AppointmentStatus.checked_in, now=NOW)

    marked = sweep_no_shows(db_session, grace_minutes=15, now=NOW)

    assert marked == [overdue.id]
    db_session.refresh(overdue)
    db_session.refresh(recent)
    assert overdue.status == AppointmentStatus.cancelled
    assert overdue.no_show is True
    assert overdue.cancellation_reason == "No-show (15-minute grace period expired)"
    assert recent.status == AppointmentStatus.scheduled
    assert arrived.status == AppointmentStatus.checked_in


def test_sweep_is_idempotent(db_session):
    _appointment(db_session, minutes_from_now=-30)
    assert len(sweep_no_shows(db_session, now=NOW)) == 1
    assert sweep_no_shows(db_session, now=NOW) == []


def test_refresh_orders_waiting_entries_by_arrival(db_session):
    second = add_walk_in(db_session, patient_id="b", now=NOW + timedelta(minutes=5))
    first = add_walk_in(db_session, patient_id="a", priority=QueuePriority.high, now=NOW)
    done = add_walk_in(db_session, patient_id="c", now=NOW - timedelta(minutes=30))
    update_queue_entry_status(db_session, done, QueueStatus.in_service)
    update_queue_entry_status(db_session, done, QueueStatus.done)

    assert refresh_queue_positions(db_session, minutes_per_patient=30) == 2

    db_session.refresh(first)
    db_session.refresh(second)
    db_session.refresh(done)
    assert (first.position, first.estimated_wait_minutes) == (1, 30)
    assert (second.position, second.estimated_wait_minutes) == (2, 60)
    assert done.position is None


def test_walk_in_is_queued(db_session, clinician):
    entry = add_walk_in(db_session, reason="Toothache", priority=QueuePriority.emergency, actor=clinician, now=NOW)
    assert entry.queue_type == QueueType.walk_in
    assert entry.status == QueueStatus.waiting
    assert entry.notes == "Toothache"
    assert db_session.scalar(select(QueueEntry.id)) == entry.id


def test_status_endpoint(api_client, db_session):
    appointment = _appointment(db_session)
    response = api_client.post(f"/appointments/{appointment.id}/status", json={"status": "checked_in"})
    assert response.status_code == 200
    assert response.json()["status"] == "checked_in"

    response = api_client.post(f"/appointments/{appointment.id}/status", json={"status": "scheduled"})
    assert response.status_code == 409

    assert api_client.post("/appointments/9999/status", json={"status": "checked_in"}).status_code == 404

    queue = api_client.get("/queue").json()
    assert [item["appointment_id"] for item in queue] == [appointment.id]


def test_walk_in_endpoint(api_client):
    response = api_client.post("/queue/walk-ins", json={"patient_id": "p9", "priority": "high"})
    assert response.status_code == 201
    body = response.json()
    assert body["queue_type"] == "walk_in"
    assert body["priority"] == "high"


def test_jobs_endpoint_is_admin_only(api_client, clinician, db_session):
    assert api_client.get("/jobs").status_code == 403

    clinician.role = Role.superadmin
    db_session.commit()
    response = api_client.get("/jobs")
    assert response.status_code == 200
    assert response.json() == []


def test_walk_in_status_endpoint(api_client):
    entry_id = api_client.post("/queue/walk-ins", json={"patient_id": "p9"}).json()["id"]

    response = api_client.post(f"/queue/{entry_id}/status", json={"status": "in_service"})
    assert response.status_code == 200
    assert response.json()["status"] == "in_service"
    assert api_client.get("/queue").json() == []

    assert api_client.post(f"/queue/{entry_id}/status", json={"status": "waiting"}).status_code == 409
    assert api_client.post("/queue/9999/status", json={"status": "left"}).status_code == 404

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from toothchart.db.session import get_db
from toothchart.deps import get_current_user, require_roles
from toothchart.models.appointment import Appointment
from toothchart.models.queue import QueueEntry
from toothchart.models.user import Role, User
from toothchart.schemas.front_desk import (
    AppointmentOut,
    AppointmentStatusUpdate,
    QueueEntryOut,
    QueueStatusUpdate,
    WalkInCreate,
)
from toothchart.services.front_desk import (
    InvalidStatusTransition,
    add_walk_in,
    update_appointment_status,
    update_queue_entry_status,
    waiting_queue,
)

router = APIRouter(tags=["front-desk"])


@router.post("/appointments/{appointment_id}/status", response_model=AppointmentOut)
def set_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    try:
        return update_appointment_status(
            db, appointment, payload.status, actor=user, reason=payload.reason
        )
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/queue", response_model=list[QueueEntryOut])
def get_queue(db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return waiting_queue(db)


@router.post("/queue/walk-ins", response_model=QueueEntryOut, status_code=status.HTTP_201_CREATED)
def create_walk_in(
    payload: WalkInCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return add_walk_in(
        db,
        patient_id=payload.patient_id,
        priority=payload.priority,
        reason=payload.reason,
        actor=user,
    )


@router.post("/queue/{entry_id}/status", response_model=QueueEntryOut)
def set_queue_entry_status(
    entry_id: int,
    payload: QueueStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    entry = db.get(QueueEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Queue entry not found")
    try:
        return update_queue_entry_status(db, entry, payload.status, actor=user)
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/jobs")
def list_jobs(request: Request, _user: User = Depends(require_roles(Role.superadmin))):
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return []
    return [job.as_dict() for job in scheduler.jobs]

from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.orm import Session

from toothchart.core.settings import settings
from toothchart.db.session import get_db
from toothchart.deps import get_current_user, require_roles
from toothchart.models.user import Role, User
from toothchart.schemas.dental_chart import (
    ChartDocument,
    ChartEditRequest,
    ChartLayoutOut,
    ChartLoadOut,
    ChartSaveRequest,
    ConditionOut,
    NumberingChangeRequest,
)
from toothchart.services.chart_engine import ChartEditError, NumberingLockedError, apply_edit, change_numbering
from toothchart.services.chart_pdf import ChartExportError, build_chart_pdf, export_filename
from toothchart.services.chart_store import (
    ChartStorageError,
    ChartVersionConflictError,
    load_chart,
    open_chart,
    save_chart,
)
from toothchart.services.condition_catalog import CONDITIONS, UnknownConditionError
from toothchart.services.tooth_numbering import (
    SURFACE_CODES,
    SURFACE_NAMES,
    Dentition,
    Numbering,
    filter_labels,
    ordered_labels,
    split_arches,
)

router = APIRouter(prefix="/dental-chart", tags=["dental-chart"])
patient_router = APIRouter(prefix="/patients/{patient_id}/dental-chart", tags=["dental-chart"])

require_chart_writer = require_roles(Role.dentist, Role.hygienist, Role.nurse, Role.superadmin)

PatientId = Annotated[str, Path(min_length=1, max_length=64)]


def _check_patient(patient_id: str, chart: ChartDocument) -> None:
    if chart.patient_id != patient_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Chart does not match patient",
        )


def _pdf_response(chart: ChartDocument) -> Response:
    now = datetime.now(timezone.utc)
    try:
        content = build_chart_pdf(chart, generated_at=now, clinic_name=settings.chart_clinic_name)
    except ChartExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    filename = export_filename(chart.patient_id, now.date())
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/conditions", response_model=list[ConditionOut])
def list_conditions(_user: User = Depends(get_current_user)):
    return [ConditionOut(**condition.as_dict()) for condition in CONDITIONS]


@router.get("/layout", response_model=ChartLayoutOut)
def get_layout(
    numbering: Numbering = Query(default="universal"),
    dentition: Dentition = Query(default="permanent"),
    query: Optional[str] = Query(default=None, max_length=8),
    _user: User = Depends(get_current_user),
):
    labels = ordered_labels(numbering, dentition)
    upper, lower = split_arches(labels, dentition)
    visible = set(filter_labels(labels, query))
    return ChartLayoutOut(
        numbering=numbering,
        dentition=dentition,
        labels=[label for label in labels if label in visible],
        upper=[label for label in upper if label in visible],
        lower=[label for label in lower if label in visible],
        surfaces=list(SURFACE_CODES),
        surface_names=dict(SURFACE_NAMES),
    )


@patient_router.get("", response_model=ChartLoadOut)
def get_chart(
    patient_id: PatientId,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    result = open_chart(db, patient_id)
    return ChartLoadOut(chart=result.chart, stored=result.stored, warning=result.warning)


@patient_router.put("", response_model=ChartDocument)
def put_chart(
    patient_id: PatientId,
    payload: ChartSaveRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_chart_writer),
):
    _check_patient(patient_id, payload.chart)
    try:
        return save_chart(db, payload.chart, actor=user, expected_version=payload.expected_version)
    except ChartVersionConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ChartStorageError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@patient_router.post("/edits", response_model=ChartDocument)
def post_edit(
    patient_id: PatientId,
    payload: ChartEditRequest,
    user: User = Depends(get_current_user),
):
    _check_patient(patient_id, payload.chart)
    edit = payload.edit
    if not edit.recorded_by.strip():
        edit = edit.model_copy(update={"recorded_by": user.display_name})
    try:
        return apply_edit(payload.chart, edit)
    except UnknownConditionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ChartEditError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@patient_router.post("/numbering", response_model=ChartDocument)
def post_numbering(
    patient_id: PatientId,
    payload: NumberingChangeRequest,
    _user: User = Depends(get_current_user),
):
    _check_patient(patient_id, payload.chart)
    try:
        return change_numbering(payload.chart, numbering=payload.numbering, dentition=payload.dentition)
    except NumberingLockedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@patient_router.post("/export")
def export_chart(
    patient_id: PatientId,
    chart: ChartDocument,
    _user: User = Depends(get_current_user),
):
    _check_patient(patient_id, chart)
    return _pdf_response(chart)


@patient_router.get("/export")
def export_stored_chart(
    patient_id: PatientId,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    try:
        chart = load_chart(db, patient_id)
    except ChartStorageError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if chart is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chart not found")
    return _pdf_response(chart)

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from toothchart.core.settings import settings
from toothchart.models.dental_chart import DentalChartRecord
from toothchart.models.user import User
from toothchart.schemas.dental_chart import ChartDocument
from toothchart.services.audit import log_event
from toothchart.services.chart_engine import new_chart

logger = logging.getLogger("toothchart.charts")

LOAD_FAILED_WARNING = "Chart could not be loaded; starting from a blank chart"


class ChartStorageError(RuntimeError):
    pass


class ChartVersionConflictError(RuntimeError):
    def __init__(self, patient_id: str, *, expected: int, stored: int) -> None:
        super().__init__(
            f"Chart for patient {patient_id} changed since it was loaded "
            f"(expected version {expected}, stored version {stored}); merge required"
        )
        self.patient_id = patient_id
        self.expected = expected
        self.stored = stored


@dataclass
class ChartLoadResult:
    chart: ChartDocument
    stored: bool
    warning: str | None = None


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def load_chart(db: Session, patient_id: str) -> ChartDocument | None:
    try:
        record = db.get(DentalChartRecord, patient_id)
    except SQLAlchemyError as exc:
        raise ChartStorageError(f"Chart for patient {patient_id} could not be loaded") from exc
    if record is None:
        return None
    try:
        return ChartDocument.model_validate({**record.document, "version": record.version})
    except ValidationError as exc:
        raise ChartStorageError(f"Stored chart for patient {patient_id} is unreadable") from exc


def open_chart(
    db: Session,
    patient_id: str,
    *,
    numbering: str | None = None,
    dentition: str | None = None,
    now: datetime | None = None,
) -> ChartLoadResult:
    """Load the stored chart, falling back to a blank one.

    A missing chart is the normal first-visit state. A storage failure also
    yields a blank chart, but with a warning the caller must show so the user
    knows the blank chart is not the patient's record.
    """
    warning = None
    try:
        chart = load_chart(db, patient_id)
    except ChartStorageError:
        logger.exception("Falling back to blank chart for patient %s", patient_id)
        chart = None
        warning = LOAD_FAILED_WARNING
    if chart is not None:
        return ChartLoadResult(chart=chart, stored=True)
    blank = new_chart(
        patient_id,
        numbering=numbering or settings.chart_default_numbering,
        dentition=dentition or settings.chart_default_dentition,
        now=now,
    )
    return ChartLoadResult(chart=blank, stored=False, warning=warning)


def save_chart(
    db: Session,
    chart: ChartDocument,
    *,
    actor: User | None = None,
    expected_version: int | None = None,
) -> ChartDocument:
    """Overwrite the stored chart with ``chart`` and return the saved copy.

    With ``expected_version`` the save only succeeds when the stored version
    still matches; without it the last writer wins.
    """
    patient_id = chart.patient_id
    try:
        record = db.get(DentalChartRecord, patient_id, with_for_update=True)
        stored_version = record.version if record else 0
        if expected_version is not None and expected_version != stored_version:
            db.rollback()
            raise ChartVersionConflictError(
                patient_id, expected=expected_version, stored=stored_version
            )

        stamp = chart.updated_at
        if record is not None and stamp < _aware(record.updated_at):
            stamp = _aware(record.updated_at)
        new_version = stored_version + 1
        saved = chart.model_copy(update={"version": new_version, "updated_at": stamp})
        payload = saved.model_dump(mode="json", exclude={"version"})

        if record is None:
            record = DentalChartRecord(patient_id=patient_id)
            db.add(record)
        record.document = payload
        record.version = new_version
        record.updated_at = stamp
        record.updated_by_user_id = actor.id if actor else None

        log_event(
            db,
            actor=actor,
            action="dental_chart.saved",
            entity_type="dental_chart",
            entity_id=patient_id,
            before_data={"version": stored_version},
            after_data={
                "version": new_version,
                "numbering": saved.numbering,
                "teeth_with_data": sum(1 for tooth in saved.teeth.values() if tooth.has_data),
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise ChartStorageError(f"Chart for patient {patient_id} could not be saved") from exc

    logger.info("Saved chart for patient %s (version %s)", patient_id, new_version)
    return saved

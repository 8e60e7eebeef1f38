"""Chart state engine.

Every operation takes a ``ChartDocument`` and returns a new one; the input is
never mutated, so a failed edit leaves the caller's document untouched.
Nothing here persists anything, callers save through ``chart_store``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from toothchart.schemas.dental_chart import (
    ChartDocument,
    ChartEdit,
    ClearToothEdit,
    ConditionEdit,
    HistoryEntry,
    SurfaceAnnotation,
    ToothRecord,
)
from toothchart.services.condition_catalog import get_condition
from toothchart.services.tooth_numbering import (
    SURFACE_CODES,
    is_valid_label,
    normalize_surface,
    ordered_labels,
)


class ChartEditError(ValueError):
    pass


class UnknownToothError(ChartEditError):
    def __init__(self, tooth: str, numbering: str, dentition: str) -> None:
        super().__init__(f"Tooth {tooth!r} is not part of {numbering} {dentition} numbering")
        self.tooth = tooth


class SurfaceRequiredError(ChartEditError):
    def __init__(self, condition_id: str, surface: str | None) -> None:
        if surface:
            message = f"Invalid surface {surface!r}; expected one of {', '.join(SURFACE_CODES)}"
        else:
            message = f"Condition {condition_id!r} must target a surface"
        super().__init__(message)


class NumberingLockedError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("Numbering cannot change once the chart has entries")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _next_timestamp(chart: ChartDocument, now: datetime | None) -> datetime:
    stamp = now or _utcnow()
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    # updated_at must strictly advance on every mutation
    if stamp <= chart.updated_at:
        stamp = chart.updated_at + timedelta(microseconds=1)
    return stamp


def empty_teeth(numbering: str, dentition: str) -> dict[str, ToothRecord]:
    return {label: ToothRecord(tooth_id=label) for label in ordered_labels(numbering, dentition)}


def new_chart(
    patient_id: str,
    *,
    numbering: str = "universal",
    dentition: str = "permanent",
    now: datetime | None = None,
) -> ChartDocument:
    return ChartDocument(
        patient_id=patient_id,
        numbering=numbering,
        dentition=dentition,
        teeth=empty_teeth(numbering, dentition),
        updated_at=now or _utcnow(),
    )


def _require_tooth(chart: ChartDocument, tooth: str) -> str:
    label = str(tooth).strip()
    if not is_valid_label(label, chart.numbering, chart.dentition):
        raise UnknownToothError(label, chart.numbering, chart.dentition)
    return label


def apply_condition(
    chart: ChartDocument,
    tooth: str,
    condition_id: str,
    *,
    surface: str | None = None,
    note: str | None = None,
    recorded_by: str = "",
    now: datetime | None = None,
) -> ChartDocument:
    condition = get_condition(condition_id)
    label = _require_tooth(chart, tooth)
    surface_code = None
    if condition.surface:
        surface_code = normalize_surface(surface)
        if surface_code is None:
            raise SurfaceRequiredError(condition.id, surface)

    stamp = _next_timestamp(chart, now)
    draft = chart.model_copy(deep=True)
    record = draft.teeth.get(label) or ToothRecord(tooth_id=label)
    recorded_by = (recorded_by or "").strip()

    if surface_code is not None:
        record.surfaces[surface_code] = SurfaceAnnotation(
            condition_id=condition.id,
            note=note,
            recorded_by=recorded_by,
            recorded_at=stamp,
        )
        scope = "surface"
    else:
        # surface annotations are left in place
        record.whole = condition.id
        scope = "whole"

    record.history.append(
        HistoryEntry(
            scope=scope,
            surface=surface_code,
            condition_id=condition.id,
            note=note,
            recorded_by=recorded_by,
            recorded_at=stamp,
        )
    )
    draft.teeth[label] = record
    draft.updated_at = stamp
    return draft


def clear_tooth(
    chart: ChartDocument,
    tooth: str,
    *,
    recorded_by: str = "",
    now: datetime | None = None,
) -> ChartDocument:
    label = _require_tooth(chart, tooth)
    stamp = _next_timestamp(chart, now)
    draft = chart.model_copy(deep=True)
    previous = draft.teeth.get(label)
    history = list(previous.history) if previous else []
    history.append(
        HistoryEntry(scope="clear", recorded_by=(recorded_by or "").strip(), recorded_at=stamp)
    )
    draft.teeth[label] = ToothRecord(tooth_id=label, history=history)
    draft.updated_at = stamp
    return draft


def apply_edit(chart: ChartDocument, edit: ChartEdit, *, now: datetime | None = None) -> ChartDocument:
    if isinstance(edit, ConditionEdit):
        return apply_condition(
            chart,
            edit.tooth,
            edit.condition_id,
            surface=edit.surface,
            note=edit.note,
            recorded_by=edit.recorded_by,
            now=now,
        )
    if isinstance(edit, ClearToothEdit):
        return clear_tooth(chart, edit.tooth, recorded_by=edit.recorded_by, now=now)
    raise TypeError(f"Unsupported chart edit: {type(edit).__name__}")


def change_numbering(
    chart: ChartDocument,
    *,
    numbering: str | None = None,
    dentition: str | None = None,
    now: datetime | None = None,
) -> ChartDocument:
    """Re-key an empty chart to another numbering scheme or dentition.

    Labels of the two schemes are unrelated key spaces, and no translation
    policy for existing entries is defined, so a chart with any recorded data
    refuses the switch.
    """
    target_numbering = numbering or chart.numbering
    target_dentition = dentition or chart.dentition
    if (target_numbering, target_dentition) == (chart.numbering, chart.dentition):
        return chart.model_copy(deep=True)
    if chart.has_data:
        raise NumberingLockedError()
    ordered_labels(target_numbering, target_dentition)
    stamp = _next_timestamp(chart, now)
    return ChartDocument(
        patient_id=chart.patient_id,
        numbering=target_numbering,
        dentition=target_dentition,
        teeth=empty_teeth(target_numbering, target_dentition),
        updated_at=stamp,
        version=chart.version,
    )


class ChartEditor:
    """In-memory editing session with undo/redo over whole-document snapshots."""

    def __init__(self, chart: ChartDocument, *, max_history: int = 100) -> None:
        self.chart = chart
        self.max_history = max_history
        self._undo: list[ChartDocument] = []
        self._redo: list[ChartDocument] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def _commit(self, updated: ChartDocument) -> ChartDocument:
        self._undo.append(self.chart)
        if len(self._undo) > self.max_history:
            self._undo.pop(0)
        self._redo.clear()
        self.chart = updated
        return updated

    def apply(self, edit: ChartEdit, *, now: datetime | None = None) -> ChartDocument:
        return self._commit(apply_edit(self.chart, edit, now=now))

    def apply_condition(self, tooth: str, condition_id: str, **kwargs) -> ChartDocument:
        return self._commit(apply_condition(self.chart, tooth, condition_id, **kwargs))

    def clear_tooth(self, tooth: str, **kwargs) -> ChartDocument:
        return self._commit(clear_tooth(self.chart, tooth, **kwargs))

    def _restore(self, snapshot: ChartDocument) -> ChartDocument:
        # keep the clock and the concurrency token moving forward
        return snapshot.model_copy(
            update={
                "updated_at": _next_timestamp(self.chart, None),
                "version": self.chart.version,
            }
        )

    def undo(self) -> ChartDocument:
        if self._undo:
            self._redo.append(self.chart)
            self.chart = self._restore(self._undo.pop())
        return self.chart

    def redo(self) -> ChartDocument:
        if self._redo:
            self._undo.append(self.chart)
            self.chart = self._restore(self._redo.pop())
        return self.chart

    def mark_saved(self, saved: ChartDocument) -> None:
        """Adopt the stored copy (new version) without touching the undo stacks."""
        self.chart = saved

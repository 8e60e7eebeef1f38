from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field, model_validator

from toothchart.services.tooth_numbering import (
    Dentition,
    Numbering,
    SurfaceCode,
    ordered_labels,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class SurfaceAnnotation(BaseModel):
    condition_id: str
    note: Optional[str] = None
    recorded_by: str = ""
    recorded_at: UtcDatetime


class HistoryEntry(BaseModel):
    scope: Literal["surface", "whole", "clear"]
    surface: Optional[SurfaceCode] = None
    condition_id: Optional[str] = None
    note: Optional[str] = None
    recorded_by: str = ""
    recorded_at: UtcDatetime


class ToothRecord(BaseModel):
    tooth_id: str
    whole: Optional[str] = None
    surfaces: dict[SurfaceCode, SurfaceAnnotation] = Field(default_factory=dict)
    history: list[HistoryEntry] = Field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.whole or self.surfaces or self.history)


class ChartDocument(BaseModel):
    patient_id: str = Field(min_length=1, max_length=64)
    dentition: Dentition = "permanent"
    numbering: Numbering = "universal"
    teeth: dict[str, ToothRecord] = Field(default_factory=dict)
    updated_at: UtcDatetime
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_teeth_keys(self) -> "ChartDocument":
        labels = set(ordered_labels(self.numbering, self.dentition))
        for key, record in self.teeth.items():
            if key not in labels:
                raise ValueError(
                    f"Tooth {key!r} is not part of {self.numbering} {self.dentition} numbering"
                )
            if record.tooth_id != key:
                raise ValueError(f"Tooth record {record.tooth_id!r} stored under key {key!r}")
        return self

    @property
    def has_data(self) -> bool:
        return any(record.has_data for record in self.teeth.values())


class ConditionEdit(BaseModel):
    kind: Literal["condition"] = "condition"
    tooth: str = Field(min_length=1)
    condition_id: str = Field(min_length=1)
    surface: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=2000)
    recorded_by: str = Field(default="", max_length=200)


class ClearToothEdit(BaseModel):
    kind: Literal["clear"] = "clear"
    tooth: str = Field(min_length=1)
    recorded_by: str = Field(default="", max_length=200)


ChartEdit = Annotated[Union[ConditionEdit, ClearToothEdit], Field(discriminator="kind")]


class ChartEditRequest(BaseModel):
    chart: ChartDocument
    edit: ChartEdit


class NumberingChangeRequest(BaseModel):
    chart: ChartDocument
    numbering: Optional[Numbering] = None
    dentition: Optional[Dentition] = None


class ChartSaveRequest(BaseModel):
    chart: ChartDocument
    expected_version: Optional[int] = Field(default=None, ge=0)


class ChartLoadOut(BaseModel):
    chart: ChartDocument
    stored: bool
    warning: Optional[str] = None


class ConditionOut(BaseModel):
    id: str
    label: str
    color: str
    surface: bool


class ChartLayoutOut(BaseModel):
    numbering: Numbering
    dentition: Dentition
    labels: list[str]
    upper: list[str]
    lower: list[str]
    surfaces: list[str]
    surface_names: dict[str, str]

from __future__ import annotations

from dataclasses import dataclass


class UnknownConditionError(LookupError):
    def __init__(self, condition_id: str) -> None:
        super().__init__(f"Condition not found: {condition_id}")
        self.condition_id = condition_id


@dataclass(frozen=True)
class Condition:
    id: str
    label: str
    color: str
    surface: bool

    def as_dict(self) -> dict[str, object]:
        return {"id": self.id, "label": self.label, "color": self.color, "surface": self.surface}


CONDITIONS: tuple[Condition, ...] = (
    Condition("caries", "Caries", "#ef4444", True),
    Condition("filling", "Filling", "#3b82f6", True),
    Condition("composite", "Composite", "#06b6d4", True),
    Condition("fracture", "Fracture", "#db2777", True),
    Condition("veneer", "Veneer", "#eab308", True),
    Condition("crown", "Crown", "#f59e0b", False),
    Condition("rct", "Root Canal", "#7c3aed", False),
    Condition("implant", "Implant", "#10b981", False),
    Condition("extracted", "Extracted", "#6b7280", False),
    Condition("missing", "Missing", "#9ca3af", False),
    Condition("mobility", "Mobility", "#a3e635", False),
)

CONDITION_LOOKUP: dict[str, Condition] = {condition.id: condition for condition in CONDITIONS}

# Whole-tooth conditions that mean the crown is absent from the arch.
ABSENT_CONDITIONS = frozenset({"extracted", "missing"})


def get_condition(condition_id: str) -> Condition:
    condition = CONDITION_LOOKUP.get(str(condition_id or "").strip().lower())
    if condition is None:
        raise UnknownConditionError(condition_id)
    return condition


def surface_conditions() -> list[Condition]:
    return [condition for condition in CONDITIONS if condition.surface]


def whole_tooth_conditions() -> list[Condition]:
    return [condition for condition in CONDITIONS if not condition.surface]

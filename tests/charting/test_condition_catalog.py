import pytest

from toothchart.services.condition_catalog import (
    ABSENT_CONDITIONS,
    CONDITIONS,
    UnknownConditionError,
    get_condition,
    surface_conditions,
    whole_tooth_conditions,
)


def test_condition_ids_are_unique():
    ids = [condition.id for condition in CONDITIONS]
    assert len(ids) == len(set(ids))


def test_every_condition_has_a_hex_colour():
    for condition in CONDITIONS:
        assert condition.color.startswith("#")
        assert len(condition.color) == 7


def test_catalog_splits_into_surface_and_whole_tooth():
    surface_ids = {condition.id for condition in surface_conditions()}
    whole_ids = {condition.id for condition in whole_tooth_conditions()}
    assert {"caries", "filling"} <= surface_ids
    assert {"crown", "rct", "implant", "extracted", "missing"} <= whole_ids
    assert not surface_ids & whole_ids
    assert ABSENT_CONDITIONS <= whole_ids


def test_get_condition_normalizes_id():
    assert get_condition(" Caries ").id == "caries"


@pytest.mark.parametrize("condition_id", ["gold-plating", "", None])
def test_get_condition_rejects_unknown(condition_id):
    with pytest.raises(UnknownConditionError):
        get_condition(condition_id)


def test_as_dict_shape():
    assert get_condition("crown").as_dict() == {
        "id": "crown",
        "label": "Crown",
        "color": "#f59e0b",
        "surface": False,
    }

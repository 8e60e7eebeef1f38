import pytest

from toothchart.services.tooth_numbering import (
    filter_labels,
    is_valid_label,
    normalize_surface,
    ordered_labels,
    split_arches,
)


def test_universal_permanent_runs_1_to_32():
    assert ordered_labels("universal") == tuple(str(n) for n in range(1, 33))


def test_fdi_permanent_order_follows_quadrants():
    labels = ordered_labels("fdi", "permanent")
    assert labels[:8] == ("18", "17", "16", "15", "14", "13", "12", "11")
    assert labels[8:16] == ("21", "22", "23", "24", "25", "26", "27", "28")
    assert labels[16] == "48"
    assert labels[-1] == "38"
    assert len(set(labels)) == 32


@pytest.mark.parametrize(
    ("numbering", "first", "last"),
    [
        ("universal", "A", "T"),
        ("fdi", "55", "75"),
    ],
)
def test_primary_dentition_has_20_teeth(numbering, first, last):
    labels = ordered_labels(numbering, "primary")
    assert len(labels) == 20
    assert labels[0] == first
    assert labels[-1] == last


def test_unknown_numbering_is_rejected():
    with pytest.raises(ValueError):
        ordered_labels("palmer")


@pytest.mark.parametrize(
    ("label", "numbering", "expected"),
    [
        ("8", "universal", True),
        ("33", "universal", False),
        ("0", "universal", False),
        ("11", "fdi", True),
        ("19", "fdi", False),
        ("8", "fdi", False),
    ],
)
def test_is_valid_label(label, numbering, expected):
    assert is_valid_label(label, numbering) is expected


def test_split_arches_permanent():
    upper, lower = split_arches(ordered_labels("universal"), "permanent")
    assert upper == [str(n) for n in range(1, 17)]
    assert lower == [str(n) for n in range(17, 33)]


def test_split_arches_primary():
    upper, lower = split_arches(ordered_labels("fdi", "primary"), "primary")
    assert upper[0] == "55"
    assert lower[0] == "85"
    assert len(upper) == len(lower) == 10


def test_filter_labels_matches_substring():
    labels = ordered_labels("universal")
    assert filter_labels(labels, "2") == ["2", "12", "20", "21", "22", "23", "24", "25", "26", "27", "28", "29", "32"]
    assert filter_labels(labels, "  ") == list(labels)
    assert filter_labels(labels, None) == list(labels)


def test_filter_labels_is_case_insensitive():
    assert filter_labels(ordered_labels("universal", "primary"), "c") == ["C"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("O", "O"),
        (" m ", "M"),
        ("b", "B"),
        ("X", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_surface(raw, expected):
    assert normalize_surface(raw) == expected

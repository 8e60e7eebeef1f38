from __future__ import annotations

from typing import Literal

Numbering = Literal["universal", "fdi"]
Dentition = Literal["permanent", "primary"]
SurfaceCode = Literal["M", "D", "B", "L", "O"]

NUMBERINGS: tuple[str, ...] = ("universal", "fdi")
DENTITIONS: tuple[str, ...] = ("permanent", "primary")

SURFACE_CODES: tuple[str, ...] = ("M", "D", "B", "L", "O")
SURFACE_NAMES = {
    "M": "Mesial",
    "D": "Distal",
    "B": "Buccal",
    "L": "Lingual",
    "O": "Occlusal",
}

# Each sequence runs upper right -> upper left, then lower arch.
_LABELS: dict[tuple[str, str], tuple[str, ...]] = {
    ("universal", "permanent"): tuple(str(n) for n in range(1, 33)),
    ("universal", "primary"): tuple("ABCDEFGHIJKLMNOPQRST"),
    ("fdi", "permanent"): tuple(
        str(n)
        for n in (
            18, 17, 16, 15, 14, 13, 12, 11, 21, 22, 23, 24, 25, 26, 27, 28,
            48, 47, 46, 45, 44, 43, 42, 41, 31, 32, 33, 34, 35, 36, 37, 38,
        )
    ),
    ("fdi", "primary"): tuple(
        str(n)
        for n in (
            55, 54, 53, 52, 51, 61, 62, 63, 64, 65,
            85, 84, 83, 82, 81, 71, 72, 73, 74, 75,
        )
    ),
}

_UPPER_ARCH_SIZE = {"permanent": 16, "primary": 10}


def ordered_labels(numbering: str, dentition: str = "permanent") -> tuple[str, ...]:
    try:
        return _LABELS[(numbering, dentition)]
    except KeyError:
        raise ValueError(f"Unsupported numbering/dentition: {numbering}/{dentition}") from None


def is_valid_label(label: str, numbering: str, dentition: str = "permanent") -> bool:
    return str(label) in ordered_labels(numbering, dentition)


def split_arches(
    labels: tuple[str, ...] | list[str], dentition: str = "permanent"
) -> tuple[list[str], list[str]]:
    upper_size = _UPPER_ARCH_SIZE[dentition]
    labels = list(labels)
    return labels[:upper_size], labels[upper_size:]


def filter_labels(labels: tuple[str, ...] | list[str], query: str | None) -> list[str]:
    needle = str(query or "").strip().lower()
    if not needle:
        return list(labels)
    return [label for label in labels if needle in label.lower()]


def normalize_surface(surface: str | None) -> str | None:
    if surface is None:
        return None
    code = surface.strip().upper()
    if code not in SURFACE_CODES:
        return None
    return code

from __future__ import annotations

import re
from typing import Iterable, TypeVar


_DIGITS = re.compile(r"\d+")

T = TypeVar("T")


def normalize_label(value: object | None) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).strip()


def alpha_numeric_key(value: object | None) -> tuple[str, int]:
    """Split a shelf label such as ``A10`` into ``("A", 10)``.

    Letters are compared case-insensitively with every digit removed; the
    digits, read as one integer, break ties. Labels without digits count as 0.
    """

    label = normalize_label(value)
    digits = "".join(_DIGITS.findall(label))
    letters = _DIGITS.sub("", label).upper()
    return letters, int(digits) if digits else 0


def row_key(value: object | None) -> tuple[int, int, str]:
    label = normalize_label(value)
    try:
        return (0, int(label), "")
    except ValueError:
        return (1, 0, label.upper())


def location_sort_key(section, row, bin_) -> tuple:
    return (alpha_numeric_key(section), row_key(row), alpha_numeric_key(bin_))


def item_sort_key(item) -> tuple:
    return location_sort_key(
        getattr(item, "section", None),
        getattr(item, "row", None),
        getattr(item, "bin", None),
    )


def sort_items(items: Iterable[T]) -> list[T]:
    return sorted(items, key=item_sort_key)


def sort_sections(sections: Iterable[str]) -> list[str]:
    unique = {section for section in sections if normalize_label(section)}
    return sorted(unique, key=lambda section: (alpha_numeric_key(section), section))

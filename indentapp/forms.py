"""Parsing and validation of submitted forms.

Parsers collect every problem into a ``field -> message`` mapping and raise a
single :class:`FormValidationError`, so a form can be re-rendered with all of
its inline messages at once.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping


class FormValidationError(ValueError):
    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))


def _text(form: Mapping[str, Any], name: str) -> str:
    value = form.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(form: Mapping[str, Any], name: str) -> str | None:
    return _text(form, name) or None


def _required_text(form, name: str, message: str, errors: dict[str, str]) -> str:
    value = _text(form, name)
    if not value:
        errors[name] = message
    return value


def _optional_count(form, name: str, errors: dict[str, str]) -> int | None:
    raw = _text(form, name)
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        errors[name] = "Enter a whole number."
        return None
    if value < 0:
        errors[name] = "Must be 0 or more."
        return None
    return value


def _optional_choice(form, name: str, choices: Iterable[str], errors: dict[str, str]) -> str | None:
    value = _text(form, name)
    if not value:
        return None
    allowed = tuple(choices)
    if value not in allowed:
        errors[name] = f"Choose one of: {', '.join(allowed)}."
        return None
    return value


def parse_quantity(form: Mapping[str, Any], name: str = "quantity") -> str:
    """Quantities stay free text ("10", "5x30's", "2 boxes"); only presence is checked."""

    errors: dict[str, str] = {}
    quantity = _required_text(form, name, "Please enter quantity", errors)
    if errors:
        raise FormValidationError(errors)
    return quantity


def parse_line_edit(form: Mapping[str, Any], sources: Iterable[str]) -> tuple[str, dict[str, Any]]:
    """Return the new quantity and the item fields edited alongside it."""

    errors: dict[str, str] = {}
    quantity = _required_text(form, "quantity", "Please enter quantity", errors)
    item_fields = {
        "min_qty": _optional_count(form, "min_qty", errors),
        "max_qty": _optional_count(form, "max_qty", errors),
        "indent_source": _optional_choice(form, "indent_source", sources, errors),
        "remarks": _optional_text(form, "remarks"),
    }
    if errors:
        raise FormValidationError(errors)
    return quantity, item_fields


def parse_item_form(
    form: Mapping[str, Any],
    *,
    item_types: Iterable[str],
    sources: Iterable[str],
) -> dict[str, Any]:
    errors: dict[str, str] = {}
    fields: dict[str, Any] = {
        "name": _required_text(form, "name", "Please enter drug name", errors),
        "section": _required_text(form, "section", "Required", errors),
        "row": _required_text(form, "row", "Required", errors),
        "bin": _required_text(form, "bin", "Required", errors),
        "min_qty": _optional_count(form, "min_qty", errors),
        "max_qty": _optional_count(form, "max_qty", errors),
        "indent_source": _optional_choice(form, "indent_source", sources, errors),
        "remarks": _optional_text(form, "remarks"),
        "image_url": _optional_text(form, "image_url"),
    }

    item_type = _text(form, "type")
    if not item_type:
        errors["type"] = "Please select type"
    else:
        fields["type"] = _optional_choice(form, "type", item_types, errors)

    if errors:
        raise FormValidationError(errors)
    return fields

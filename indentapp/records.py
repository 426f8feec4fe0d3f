"""Detached copies of backend rows held by the view models.

The database session owns the live ORM objects; screens only ever see these
frozen records, rebuilt on every read, so nothing a view does can leak back
into the session.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CatalogueItem:
    id: int
    name: str
    type: Optional[str] = None
    section: str = ""
    row: str = ""
    bin: str = ""
    location_code: Optional[str] = None
    min_qty: Optional[int] = None
    max_qty: Optional[int] = None
    indent_source: Optional[str] = None
    remarks: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CatalogueItem":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            type=_clean_text(data.get("type")),
            section=str(data.get("section") or ""),
            row=str(data.get("row") or ""),
            bin=str(data.get("bin") or ""),
            location_code=_clean_text(data.get("location_code")),
            min_qty=_clean_int(data.get("min_qty")),
            max_qty=_clean_int(data.get("max_qty")),
            indent_source=_clean_text(data.get("indent_source")),
            remarks=_clean_text(data.get("remarks")),
            image_url=_clean_text(data.get("image_url")),
        )

    @classmethod
    def from_model(cls, item) -> "CatalogueItem":
        return cls.from_mapping(item.to_payload())


@dataclass(frozen=True)
class RequisitionLine:
    """A requisition request joined with the catalogue item it asks for."""

    id: int
    item_id: int
    requested_qty: str
    status: str
    created_at: Optional[datetime]
    item: Optional[CatalogueItem]

    @property
    def item_name(self) -> str:
        return self.item.name if self.item else ""

    @property
    def source(self) -> Optional[str]:
        return self.item.indent_source if self.item else None

    def with_quantity(self, requested_qty: str) -> "RequisitionLine":
        return replace(self, requested_qty=requested_qty)

    @classmethod
    def from_model(cls, request) -> "RequisitionLine":
        item = CatalogueItem.from_model(request.item) if request.item is not None else None
        return cls(
            id=request.id,
            item_id=request.item_id,
            requested_qty=request.requested_qty or "",
            status=request.status,
            created_at=request.created_at,
            item=item,
        )

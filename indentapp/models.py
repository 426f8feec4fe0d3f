from datetime import datetime

from sqlalchemy import event

from indentapp.extensions import db


class IndentStatus:
    PENDING = "Pending"
    APPROVED = "Approved"

    ALL_STATUSES = [PENDING, APPROVED]


def build_location_code(section, row, bin_) -> str | None:
    parts = [str(value).strip() for value in (section, row, bin_) if value is not None]
    parts = [part for part in parts if part]
    if not parts:
        return None
    return "-".join(parts)


class InventoryItem(db.Model):
    __tablename__ = "inventory_items"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(80))
    section = db.Column(db.String(40), nullable=False)
    row = db.Column(db.String(40), nullable=False)
    bin = db.Column(db.String(40), nullable=False)
    location_code = db.Column(db.String(130), index=True)
    min_qty = db.Column(db.Integer, nullable=True)
    max_qty = db.Column(db.Integer, nullable=True)
    indent_source = db.Column(db.String(20), nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    requests = db.relationship(
        "IndentRequest",
        back_populates="item",
        cascade="all, delete-orphan",
    )

    def refresh_location_code(self) -> None:
        self.location_code = build_location_code(self.section, self.row, self.bin)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "section": self.section,
            "row": self.row,
            "bin": self.bin,
            "location_code": self.location_code,
            "min_qty": self.min_qty,
            "max_qty": self.max_qty,
            "indent_source": self.indent_source,
            "remarks": self.remarks,
            "image_url": self.image_url,
        }


class IndentRequest(db.Model):
    __tablename__ = "indent_requests"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_qty = db.Column(db.String(120), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default=IndentStatus.PENDING, index=True
    )
    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    item = db.relationship("InventoryItem", back_populates="requests")

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "requested_qty": self.requested_qty,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(InventoryItem, "before_insert")
@event.listens_for(InventoryItem, "before_update")
def _sync_location_code(mapper, connection, target):
    target.refresh_location_code()

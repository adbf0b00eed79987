"""
Sheet Models — backing tables for the SQL tabular store.

A ``Sheet`` is one named table of the planner's sheet-like store (a plan,
the template, the permission table). Each ``SheetRow`` keeps the cell values
of one 1-based row as a JSON array; rows that are entirely blank are not
stored.
"""

from datetime import datetime, timezone

from orgplan.models import db


class Sheet(db.Model):
    """A named table in the tabular store."""
    __tablename__ = "sheets"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)
    # Advisory only: the store still accepts writes to protected sheets.
    is_protected = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    rows = db.relationship(
        "SheetRow", back_populates="sheet",
        lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "is_hidden": self.is_hidden,
            "is_protected": self.is_protected,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SheetRow(db.Model):
    """Cell values for a single row of a sheet."""
    __tablename__ = "sheet_rows"

    id = db.Column(db.Integer, primary_key=True)
    sheet_id = db.Column(
        db.Integer, db.ForeignKey("sheets.id", ondelete="CASCADE"), nullable=False,
    )
    row_index = db.Column(db.Integer, nullable=False)  # 1-based
    cells = db.Column(db.JSON, nullable=False, default=list)

    __table_args__ = (
        db.UniqueConstraint("sheet_id", "row_index", name="uq_sheet_row_index"),
        db.Index("ix_sheet_rows_sheet", "sheet_id"),
    )

    sheet = db.relationship("Sheet", back_populates="rows")

"""
SQL-backed tabular store.

Sheets and their rows live in the application database (``sheets`` and
``sheet_rows``). Each row keeps its cells as a JSON array; a row whose cells
are all blank is deleted rather than stored, so ``last_row`` is simply the
highest stored index.

All SQLAlchemy failures roll the session back and surface as
``StoreAccessError``. Nothing is retried here.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from orgplan.core.exceptions import NotFoundError, StoreAccessError
from orgplan.models import db
from orgplan.models.sheet import Sheet, SheetRow
from orgplan.store import TabularStore, is_blank

logger = logging.getLogger(__name__)


def _trim(values: list[Any]) -> list[Any]:
    """Drop trailing blank cells."""
    end = len(values)
    while end and is_blank(values[end - 1]):
        end -= 1
    return values[:end]


class SqlTabularStore(TabularStore):
    """Tabular store on top of Flask-SQLAlchemy models."""

    def __init__(self, session=None) -> None:
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @contextmanager
    def _guard(self, action: str, name: str | None = None):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store %s failed for table %r: %s", action, name, exc, exc_info=True)
            raise StoreAccessError(f"Store {action} failed: {exc.__class__.__name__}") from exc

    def _sheet(self, name: str) -> Sheet:
        sheet = self.session.query(Sheet).filter_by(name=name).first()
        if sheet is None:
            raise NotFoundError(resource="Table", resource_id=name)
        return sheet

    def _rows(self, sheet: Sheet):
        return self.session.query(SheetRow).filter_by(sheet_id=sheet.id)

    def _name_taken(self, name: str) -> bool:
        query = self.session.query(Sheet.id).filter(db.func.lower(Sheet.name) == name.lower())
        return query.first() is not None

    # ── Tables ───────────────────────────────────────────────────────────

    def list_tables(self) -> list[str]:
        with self._guard("list"):
            sheets = self.session.query(Sheet).order_by(Sheet.position, Sheet.id).all()
            return [s.name for s in sheets]

    def has_table(self, name: str) -> bool:
        with self._guard("lookup", name):
            return self.session.query(Sheet.id).filter_by(name=name).first() is not None

    def create_table(self, name: str, *, hidden: bool = False, protected: bool = False) -> None:
        with self._guard("create", name):
            if self._name_taken(name):
                raise StoreAccessError(f"Table {name!r} already exists")
            last = self.session.query(db.func.max(Sheet.position)).scalar()
            sheet = Sheet(
                name=name,
                position=(last or 0) + 1,
                is_hidden=hidden,
                is_protected=protected,
            )
            self.session.add(sheet)
            self.session.commit()
        logger.info("Created table %r (hidden=%s, protected=%s)", name, hidden, protected)

    def duplicate_table(self, source: str, new_name: str) -> None:
        with self._guard("duplicate", source):
            src = self._sheet(source)
            if self._name_taken(new_name):
                raise StoreAccessError(f"Table {new_name!r} already exists")
            last = self.session.query(db.func.max(Sheet.position)).scalar()
            copy = Sheet(name=new_name, position=(last or 0) + 1)
            self.session.add(copy)
            self.session.flush()
            for row in self._rows(src).all():
                self.session.add(SheetRow(
                    sheet_id=copy.id, row_index=row.row_index, cells=list(row.cells),
                ))
            self.session.commit()
        logger.info("Duplicated table %r as %r", source, new_name)

    def rename_table(self, old_name: str, new_name: str) -> None:
        with self._guard("rename", old_name):
            sheet = self._sheet(old_name)
            if self._name_taken(new_name):
                raise StoreAccessError(f"Table {new_name!r} already exists")
            sheet.name = new_name
            self.session.commit()

    def delete_table(self, name: str) -> None:
        with self._guard("delete", name):
            sheet = self._sheet(name)
            self._rows(sheet).delete(synchronize_session=False)
            self.session.delete(sheet)
            self.session.commit()
        logger.info("Deleted table %r", name)

    def is_hidden(self, name: str) -> bool:
        with self._guard("lookup", name):
            return self._sheet(name).is_hidden

    def is_protected(self, name: str) -> bool:
        with self._guard("lookup", name):
            return self._sheet(name).is_protected

    # ── Cells ────────────────────────────────────────────────────────────

    def last_row(self, name: str) -> int:
        with self._guard("read", name):
            sheet = self._sheet(name)
            top = self.session.query(db.func.max(SheetRow.row_index)).filter(
                SheetRow.sheet_id == sheet.id,
            ).scalar()
            return top or 0

    def read_range(self, name, row, col, num_rows, num_cols):
        if num_rows <= 0 or num_cols <= 0:
            return []
        with self._guard("read", name):
            sheet = self._sheet(name)
            stored = self._rows(sheet).filter(
                SheetRow.row_index >= row,
                SheetRow.row_index < row + num_rows,
            ).all()
        by_index = {r.row_index: r.cells or [] for r in stored}
        grid = []
        for r in range(row, row + num_rows):
            values = by_index.get(r, [])
            cells = []
            for c in range(col - 1, col - 1 + num_cols):
                value = values[c] if c < len(values) else ""
                cells.append("" if value is None else value)
            grid.append(cells)
        return grid

    def write_range(self, name, row, col, values):
        with self._guard("write", name):
            sheet = self._sheet(name)
            for offset, row_values in enumerate(values):
                index = row + offset
                existing = self._rows(sheet).filter_by(row_index=index).first()
                cells = list(existing.cells) if existing is not None else []
                needed = col - 1 + len(row_values)
                if len(cells) < needed:
                    cells.extend([""] * (needed - len(cells)))
                for i, value in enumerate(row_values):
                    cells[col - 1 + i] = "" if value is None else value
                cells = _trim(cells)
                if not cells:
                    if existing is not None:
                        self.session.delete(existing)
                elif existing is not None:
                    existing.cells = cells
                else:
                    self.session.add(SheetRow(sheet_id=sheet.id, row_index=index, cells=cells))
                # Flush per row so a later read in the same grid sees this one.
                self.session.flush()
            self.session.commit()

    def clear_range(self, name, row, col, num_rows, num_cols):
        if num_rows <= 0 or num_cols <= 0:
            return
        self.write_range(name, row, col, [[""] * num_cols for _ in range(num_rows)])

    def delete_row(self, name: str, row: int) -> None:
        with self._guard("delete row", name):
            sheet = self._sheet(name)
            self._rows(sheet).filter_by(row_index=row).delete(synchronize_session=False)
            self.session.flush()
            # Shift ascending so the unique (sheet_id, row_index) pair never collides.
            below = self._rows(sheet).filter(SheetRow.row_index > row).order_by(
                SheetRow.row_index,
            ).all()
            for record in below:
                record.row_index -= 1
                self.session.flush()
            self.session.commit()

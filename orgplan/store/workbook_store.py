"""
Workbook-backed tabular store.

Keeps every table as a worksheet of a single .xlsx file, loaded with
openpyxl on first use and saved after each mutation. Hidden tables use
``sheet_state = "hidden"``; protection sets ``ws.protection.sheet`` which,
like a shared spreadsheet, only warns interactive editors and does not stop
this process from writing.

Suited to single-process deployments and local use; concurrent writers to the
same file overwrite each other.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager

from openpyxl import Workbook, load_workbook

from orgplan.core.exceptions import NotFoundError, StoreAccessError
from orgplan.store import TabularStore, is_blank

logger = logging.getLogger(__name__)

# openpyxl always creates a first sheet and refuses to save a workbook
# without a visible one; this empty sheet fills that gap.
_PLACEHOLDER_TITLE = "Sheet"


class WorkbookTabularStore(TabularStore):
    """Tabular store over one .xlsx workbook."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._wb: Workbook | None = None

    # ── Workbook lifecycle ──────────────────────────────────────────────

    @property
    def workbook(self) -> Workbook:
        if self._wb is None:
            try:
                if os.path.exists(self.path):
                    self._wb = load_workbook(self.path)
                    logger.info("Loaded workbook %s (%d sheets)", self.path, len(self._wb.sheetnames))
                else:
                    self._wb = Workbook()
                    self._wb.active.title = _PLACEHOLDER_TITLE
            except (OSError, ValueError, KeyError) as exc:
                logger.error("Cannot open workbook %s: %s", self.path, exc, exc_info=True)
                raise StoreAccessError(f"Cannot open workbook: {exc}") from exc
        return self._wb

    def _save(self) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.workbook.save(self.path)
        except (OSError, IndexError) as exc:
            logger.error("Cannot save workbook %s: %s", self.path, exc, exc_info=True)
            raise StoreAccessError(f"Cannot save workbook: {exc}") from exc

    @contextmanager
    def _mutation(self):
        yield
        self._save()

    def _sheet(self, name: str):
        wb = self.workbook
        if name not in wb.sheetnames or self._is_placeholder(name):
            raise NotFoundError(resource="Table", resource_id=name)
        return wb[name]

    def _is_placeholder(self, name: str) -> bool:
        wb = self.workbook
        if name != _PLACEHOLDER_TITLE or name not in wb.sheetnames:
            return False
        ws = wb[name]
        return ws.max_row == 1 and ws.max_column == 1 and ws.cell(1, 1).value is None

    def _has_visible_sheet(self, exclude=None) -> bool:
        return any(
            ws.sheet_state == "visible"
            for ws in self.workbook.worksheets
            if ws is not exclude and not self._is_placeholder(ws.title)
        )

    def _drop_placeholder(self) -> None:
        if self._is_placeholder(_PLACEHOLDER_TITLE) and self._has_visible_sheet():
            self.workbook.remove(self.workbook[_PLACEHOLDER_TITLE])

    def _ensure_placeholder(self, removing=None) -> None:
        if not self._has_visible_sheet(exclude=removing) and _PLACEHOLDER_TITLE not in self.workbook.sheetnames:
            self.workbook.create_sheet(title=_PLACEHOLDER_TITLE)

    def _check_free(self, name: str) -> None:
        # openpyxl silently suffixes a title that clashes in any case
        lowered = name.lower()
        if lowered == _PLACEHOLDER_TITLE.lower() or any(
            title.lower() == lowered for title in self.workbook.sheetnames
        ):
            raise StoreAccessError(f"Table {name!r} already exists or is reserved")

    # ── Tables ───────────────────────────────────────────────────────────

    def list_tables(self) -> list[str]:
        return [n for n in self.workbook.sheetnames if not self._is_placeholder(n)]

    def create_table(self, name: str, *, hidden: bool = False, protected: bool = False) -> None:
        self._check_free(name)
        with self._mutation():
            ws = self.workbook.create_sheet(title=name)
            if hidden:
                ws.sheet_state = "hidden"
            if protected:
                ws.protection.sheet = True
            self._drop_placeholder()
            self._ensure_placeholder()
        logger.info("Created table %r (hidden=%s, protected=%s)", name, hidden, protected)

    def duplicate_table(self, source: str, new_name: str) -> None:
        src = self._sheet(source)
        self._check_free(new_name)
        with self._mutation():
            ws = self.workbook.copy_worksheet(src)
            ws.title = new_name
            if ws.title != new_name:
                self.workbook.remove(ws)
                raise StoreAccessError(f"Table {new_name!r} could not be created (got {ws.title!r})")
            ws.sheet_state = "visible"
            ws.protection.sheet = False
            self._drop_placeholder()
        logger.info("Duplicated table %r as %r", source, new_name)

    def rename_table(self, old_name: str, new_name: str) -> None:
        ws = self._sheet(old_name)
        self._check_free(new_name)
        with self._mutation():
            ws.title = new_name
            if ws.title != new_name:
                ws.title = old_name
                raise StoreAccessError(f"Table {old_name!r} could not be renamed to {new_name!r}")

    def delete_table(self, name: str) -> None:
        ws = self._sheet(name)
        with self._mutation():
            self._ensure_placeholder(removing=ws)
            self.workbook.remove(ws)
        logger.info("Deleted table %r", name)

    def is_hidden(self, name: str) -> bool:
        return self._sheet(name).sheet_state != "visible"

    def is_protected(self, name: str) -> bool:
        return bool(self._sheet(name).protection.sheet)

    # ── Cells ────────────────────────────────────────────────────────────

    def last_row(self, name: str) -> int:
        ws = self._sheet(name)
        for row in range(ws.max_row, 0, -1):
            for col in range(1, ws.max_column + 1):
                if not is_blank(ws.cell(row=row, column=col).value):
                    return row
        return 0

    def read_range(self, name, row, col, num_rows, num_cols):
        if num_rows <= 0 or num_cols <= 0:
            return []
        ws = self._sheet(name)
        grid = []
        for values in ws.iter_rows(
            min_row=row, max_row=row + num_rows - 1,
            min_col=col, max_col=col + num_cols - 1,
            values_only=True,
        ):
            grid.append(["" if v is None else v for v in values])
        return grid

    def write_range(self, name, row, col, values):
        ws = self._sheet(name)
        with self._mutation():
            for r, row_values in enumerate(values):
                for c, value in enumerate(row_values):
                    ws.cell(row=row + r, column=col + c, value=None if value == "" else value)

    def clear_range(self, name, row, col, num_rows, num_cols):
        if num_rows <= 0 or num_cols <= 0:
            return
        self.write_range(name, row, col, [[""] * num_cols for _ in range(num_rows)])

    def delete_row(self, name: str, row: int) -> None:
        ws = self._sheet(name)
        with self._mutation():
            ws.delete_rows(row, 1)

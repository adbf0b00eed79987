"""
Tabular store adapter.

The planner persists everything into a sheet-like store: named tables whose
cells are addressed by 1-based (row, column) ranges. ``TabularStore`` is the
contract the repositories depend on; concrete backends live beside it:

    - ``SqlTabularStore``       — sheets and rows in the application database
    - ``WorkbookTabularStore``  — a single .xlsx workbook on disk (openpyxl)

Usage:
    from orgplan.store import build_store
    store = build_store(settings)
    store.append_row("_Permissions", ["a@b.com", "a", "edit", "...", "..."])

Every backend raises ``StoreAccessError`` when the underlying storage fails
and ``NotFoundError`` for operations on unknown tables. Table names are
unique regardless of case (``Q1`` and ``q1`` clash), as in a workbook.
"""

from __future__ import annotations

import abc
from typing import Any


class TabularStore(abc.ABC):
    """Abstract sheet-like store. All row/column indexes are 1-based."""

    # ── Tables ───────────────────────────────────────────────────────────

    @abc.abstractmethod
    def list_tables(self) -> list[str]:
        """Return table names in display order."""

    def has_table(self, name: str) -> bool:
        return name in self.list_tables()

    @abc.abstractmethod
    def create_table(self, name: str, *, hidden: bool = False, protected: bool = False) -> None:
        """Create an empty table. A name taken in any case raises ``StoreAccessError``."""

    @abc.abstractmethod
    def duplicate_table(self, source: str, new_name: str) -> None:
        """Copy every cell of *source* into a new visible table *new_name*."""

    @abc.abstractmethod
    def rename_table(self, old_name: str, new_name: str) -> None:
        ...

    @abc.abstractmethod
    def delete_table(self, name: str) -> None:
        ...

    @abc.abstractmethod
    def is_hidden(self, name: str) -> bool:
        ...

    @abc.abstractmethod
    def is_protected(self, name: str) -> bool:
        ...

    # ── Cells ────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def last_row(self, name: str) -> int:
        """Index of the last row holding any non-blank cell, 0 if empty."""

    @abc.abstractmethod
    def read_range(
        self, name: str, row: int, col: int, num_rows: int, num_cols: int,
    ) -> list[list[Any]]:
        """Return a ``num_rows`` x ``num_cols`` grid; blank cells are ``""``."""

    @abc.abstractmethod
    def write_range(self, name: str, row: int, col: int, values: list[list[Any]]) -> None:
        """Write a rectangular grid with its top-left cell at (row, col)."""

    @abc.abstractmethod
    def clear_range(self, name: str, row: int, col: int, num_rows: int, num_cols: int) -> None:
        ...

    def append_row(self, name: str, values: list[Any]) -> int:
        """Write *values* into the row after ``last_row`` and return its index."""
        row = self.last_row(name) + 1
        self.write_range(name, row, 1, [list(values)])
        return row

    @abc.abstractmethod
    def delete_row(self, name: str, row: int) -> None:
        """Remove *row*; every row below it moves up by one."""


def is_blank(value: Any) -> bool:
    """True for cells a sheet would display as empty."""
    return value is None or value == ""


def build_store(settings) -> TabularStore:
    """Instantiate the backend named by ``settings.store_backend``."""
    if settings.store_backend == "workbook":
        from orgplan.store.workbook_store import WorkbookTabularStore
        return WorkbookTabularStore(settings.workbook_path)
    from orgplan.store.sql_store import SqlTabularStore
    return SqlTabularStore()

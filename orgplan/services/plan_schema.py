"""
Plan sheet layout and node column schema.

Layout of a plan table:

    row 1-3   metadata block   A: label   B: value   (Plan name, Period, Memo)
    row 5     header row       12 node columns, see NODE_COLUMNS
    row 6+    node rows        one node per row; rows with an empty ID are padding

Mapping between sheet cells and node fields is declarative: each ``Column``
names its header label, the node field, a parse function for values read from
the sheet (or received from the API) and a serialize function for values
written back. Re-ordering headers or adding a field is a change to
``NODE_COLUMNS`` only.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

CURRENT_PLAN_ID = "current"
RESERVED_PREFIX = "_"
TEMPLATE_TABLE = "_Template"

PLAN_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")

META_ROW = 1
META_FIELDS = ("name", "period", "memo")
META_LABELS = ("Plan name", "Period", "Memo")
HEADER_ROW = 5
FIRST_NODE_ROW = HEADER_ROW + 1


# ── Cell parsers ────────────────────────────────────────────────────────────


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_text(value: Any) -> str:
    if _blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def parse_optional_text(value: Any) -> str | None:
    text = parse_text(value).strip()
    return text or None


def parse_type(value: Any) -> str:
    return parse_text(value).strip() or "existing"


def _number(value: Any) -> float | None:
    if _blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_grade(value: Any) -> int | float | str:
    """Numeric grade; anything non-numeric becomes ``""``."""
    number = _number(value)
    if number is None:
        return ""
    return int(number) if number.is_integer() else number


def parse_level(value: Any) -> int:
    number = _number(value)
    return int(number) if number is not None else 0


def parse_coordinate(value: Any) -> float:
    number = _number(value)
    return number if number is not None else 0.0


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return parse_text(value).strip().lower() in ("true", "1", "yes", "y")


def parse_timestamp(value: Any) -> str | None:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return parse_optional_text(value)


def _as_is(value: Any) -> Any:
    return value


def _empty_if_none(value: Any) -> Any:
    return "" if value is None else value


# ── Schema ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Column:
    header: str
    field: str
    parse: Callable[[Any], Any]
    serialize: Callable[[Any], Any]
    default: Any
    aliases: tuple = ()


NODE_COLUMNS: tuple[Column, ...] = (
    Column("ID", "id", parse_text, _as_is, ""),
    Column("Name", "name", parse_text, _as_is, ""),
    Column("Position", "position", parse_text, _as_is, "", ("title",)),
    Column("Grade", "grade", parse_grade, _as_is, ""),
    Column("Level", "level", parse_level, _as_is, 0),
    Column("Parent ID", "parent_id", parse_optional_text, _empty_if_none, None, ("parentId",)),
    Column("Type", "type", parse_type, _as_is, "existing"),
    Column("Employment", "employment", parse_text, _as_is, "", ("employmentType",)),
    Column("X", "x", parse_coordinate, _as_is, 0.0),
    Column("Y", "y", parse_coordinate, _as_is, 0.0),
    Column("Arranged", "is_arranged", parse_flag, _as_is, False, ("isArranged",)),
    Column("Updated At", "updated_at", parse_timestamp, _empty_if_none, None, ("updatedAt",)),
)

NODE_WIDTH = len(NODE_COLUMNS)
NODE_FIELDS = tuple(c.field for c in NODE_COLUMNS)
# Fields a client may change through a save or batch update.
EDITABLE_FIELDS = tuple(f for f in NODE_FIELDS if f not in ("id", "updated_at"))

_BY_FIELD = {c.field: c for c in NODE_COLUMNS}


def _norm(label: Any) -> str:
    return re.sub(r"[\s_\-]", "", parse_text(label)).lower()


_LOOKUP: dict[str, Column] = {}
for _col in NODE_COLUMNS:
    for _label in (_col.header, _col.field) + _col.aliases:
        _LOOKUP[_norm(_label)] = _col


def header_row() -> list[str]:
    return [c.header for c in NODE_COLUMNS]


def column_for(label: Any) -> Column | None:
    """Resolve a header label, field name or alias to its column."""
    return _LOOKUP.get(_norm(label))


def resolve_header(headers: list[Any]) -> dict[str, int]:
    """Map node fields to their index in a header row read from a sheet.

    Unknown headers are ignored; a field whose header is absent is left out
    and later filled from its default. The first occurrence of a label wins.
    """
    index: dict[str, int] = {}
    for i, label in enumerate(headers):
        col = column_for(label)
        if col is not None and col.field not in index:
            index[col.field] = i
    return index


def row_to_node(row: list[Any], index: dict[str, int]) -> dict:
    node = {}
    for col in NODE_COLUMNS:
        i = index.get(col.field)
        if i is None or i >= len(row):
            node[col.field] = col.default
        else:
            node[col.field] = col.parse(row[i])
    return node


def normalize_fields(data: dict) -> dict:
    """Parse the recognised fields of an API payload; unknown keys are dropped."""
    fields = {}
    for key, value in data.items():
        col = column_for(key)
        if col is not None:
            fields[col.field] = col.parse(value)
    return fields


def normalize_node(data: dict) -> dict:
    """Full node from an API payload, defaults applied to omitted fields."""
    fields = normalize_fields(data)
    return {c.field: fields.get(c.field, c.default) for c in NODE_COLUMNS}


def node_to_row(node: dict, updated_at: str) -> list[Any]:
    row = []
    for col in NODE_COLUMNS:
        value = updated_at if col.field == "updated_at" else node.get(col.field, col.default)
        row.append(col.serialize(value))
    return row


def is_reserved(table_name: str) -> bool:
    return table_name.startswith(RESERVED_PREFIX)

"""
Tests for the plan sheet layout and node column schema.

Covers:
  - header row order
  - header resolution by label, field name and alias; unknown headers ignored
  - row → node parsing with defaults for missing columns
  - grade/level/coordinate/flag coercion
  - API payload normalization (camelCase aliases, unknown keys dropped)
  - node → row serialization stamps updated_at
"""

from orgplan.services.plan_schema import (
    NODE_FIELDS,
    header_row,
    is_reserved,
    node_to_row,
    normalize_fields,
    normalize_node,
    parse_flag,
    parse_grade,
    parse_level,
    resolve_header,
    row_to_node,
)


def test_header_row_layout():
    assert header_row() == [
        "ID", "Name", "Position", "Grade", "Level", "Parent ID",
        "Type", "Employment", "X", "Y", "Arranged", "Updated At",
    ]
    assert len(NODE_FIELDS) == 12


def test_resolve_header_by_label_field_and_alias():
    index = resolve_header(["Name", "id", "parentId", "Notes", "Name"])
    assert index == {"name": 0, "id": 1, "parent_id": 2}


def test_row_to_node_fills_defaults_for_missing_columns():
    node = row_to_node(["n1", "Alice"], {"id": 0, "name": 1})
    assert node["id"] == "n1"
    assert node["name"] == "Alice"
    assert node["parent_id"] is None
    assert node["type"] == "existing"
    assert node["level"] == 0
    assert node["is_arranged"] is False
    assert node["updated_at"] is None


def test_row_to_node_parses_sheet_values():
    index = resolve_header(header_row())
    row = ["7", "Dan", "Lead", 3.0, "2", "", "", "full-time", "10.5", "", 1, ""]
    node = row_to_node(row, index)
    assert node["grade"] == 3
    assert node["level"] == 2
    assert node["parent_id"] is None
    assert node["type"] == "existing"
    assert node["x"] == 10.5
    assert node["y"] == 0.0
    assert node["is_arranged"] is True


def test_grade_non_numeric_becomes_blank():
    assert parse_grade("G5") == ""
    assert parse_grade("") == ""
    assert parse_grade("4") == 4
    assert parse_grade(4.5) == 4.5


def test_level_and_flag_coercion():
    assert parse_level("abc") == 0
    assert parse_level(3.0) == 3
    assert parse_flag("TRUE") is True
    assert parse_flag("no") is False
    assert parse_flag(0) is False


def test_normalize_fields_accepts_camel_case_and_drops_unknown():
    fields = normalize_fields({"parentId": "n1", "isArranged": True, "color": "red"})
    assert fields == {"parent_id": "n1", "is_arranged": True}


def test_normalize_node_applies_defaults():
    node = normalize_node({"id": "n9", "name": "Eve"})
    assert set(node) == set(NODE_FIELDS)
    assert node["type"] == "existing"
    assert node["grade"] == ""


def test_node_to_row_stamps_updated_at():
    node = normalize_node({"id": "n1", "name": "Alice", "parent_id": None})
    row = node_to_row(node, "2026-01-01T00:00:00+00:00")
    assert row[0] == "n1"
    assert row[5] == ""
    assert row[-1] == "2026-01-01T00:00:00+00:00"


def test_reserved_tables():
    assert is_reserved("_Template")
    assert is_reserved("_Permissions")
    assert not is_reserved("current")

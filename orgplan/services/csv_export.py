"""
CSV projection of a plan's nodes.

Ten columns, one row per node, in node-list order. Quoting follows RFC 4180
(``csv`` module defaults: fields containing a comma, quote or line break are
quoted, embedded quotes doubled, ``\\r\\n`` record separator).
"""

import csv
import io
import re
from datetime import date

CSV_HEADERS = [
    "ID", "Name", "Position", "Grade", "Level",
    "Parent ID", "Parent Name", "Type", "Employment", "Updated At",
]

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\r\n\t]+')


def generate_plan_csv(plan: dict) -> str:
    """Render *plan* (a repository plan document) as CSV text."""
    names = {node["id"]: node.get("name", "") for node in plan.get("nodes", [])}

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for node in plan.get("nodes", []):
        parent_id = node.get("parent_id")
        writer.writerow([
            node["id"],
            node.get("name", ""),
            node.get("position", ""),
            node.get("grade", ""),
            node.get("level", 0),
            parent_id or "",
            names.get(parent_id, "") if parent_id else "",
            node.get("type", ""),
            node.get("employment", ""),
            node.get("updated_at") or "",
        ])
    return buf.getvalue()


def export_filename(plan: dict, today: date | None = None) -> str:
    """``<plan name>_<YYYYMMDD>.csv`` with path-hostile characters replaced."""
    today = today or date.today()
    name = _UNSAFE_FILENAME.sub("_", (plan.get("name") or plan.get("id") or "plan").strip())
    return f"{name or 'plan'}_{today.strftime('%Y%m%d')}.csv"

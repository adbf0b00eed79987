"""
Plan Repository — plan/node persistence over the tabular store.

One table per plan (named by the plan id), cloned from the hidden
``_Template`` table on first save. Reads go through a single cache entry,
``all_plans``, holding every plan; every mutating path drops that entry
before it returns, whether or not the store calls succeeded.

Concurrency: none is managed here. Two saves of the same plan race with last
write wins; ``batch_update`` reads the node list (possibly from cache),
merges, and rewrites the whole block without a version check, so a
concurrent save can be lost.

Usage:
    repo = PlanRepository(store, cache)
    repo.save("proposal-q1", {"name": "Q1 proposal", "nodes": [...]})
    plans = repo.list_all()
"""

import logging
from datetime import datetime, timezone

from orgplan.core.exceptions import NotFoundError, ValidationError
from orgplan.services.cache_service import DEFAULT_TTL
from orgplan.services.plan_schema import (
    CURRENT_PLAN_ID,
    EDITABLE_FIELDS,
    FIRST_NODE_ROW,
    HEADER_ROW,
    META_FIELDS,
    META_LABELS,
    META_ROW,
    NODE_WIDTH,
    PLAN_ID_PATTERN,
    TEMPLATE_TABLE,
    header_row,
    is_reserved,
    node_to_row,
    normalize_fields,
    normalize_node,
    parse_text,
    parse_timestamp,
    resolve_header,
    row_to_node,
)
from orgplan.services.tree_check import check_tree

logger = logging.getLogger(__name__)

ALL_PLANS_KEY = "all_plans"


def validate_plan_id(plan_id) -> str:
    if not isinstance(plan_id, str) or not PLAN_ID_PATTERN.match(plan_id):
        raise ValidationError(
            "Plan id must be 1-64 letters, digits, '-' or '_' and start with a letter or digit",
            details={"plan_id": plan_id},
        )
    return plan_id


def _meta_text(value) -> str:
    # Free text: stored and read back verbatim, whitespace included
    if isinstance(value, str):
        return value
    return parse_timestamp(value) or ""


class PlanRepository:
    """Maps plan ids to ``{id, name, period, memo, nodes}`` documents."""

    def __init__(self, store, cache, *, cache_ttl=DEFAULT_TTL, strict_tree=False, clock=None):
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.strict_tree = strict_tree
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Reads ────────────────────────────────────────────────────────────

    def list_all(self) -> dict:
        """Return ``{plan_id: plan}`` for every non-administrative table."""
        return self.cache.get_cached(ALL_PLANS_KEY, self.cache_ttl, loader=self._load_all)

    def get(self, plan_id: str) -> dict:
        plan = self.list_all().get(plan_id)
        if plan is None:
            raise NotFoundError(resource="Plan", resource_id=plan_id)
        return plan

    def _load_all(self) -> dict:
        plans = {}
        for name in self.store.list_tables():
            if is_reserved(name):
                continue
            plans[name] = self._read_plan(name)
        logger.debug("Loaded %d plans from store", len(plans))
        return plans

    def _read_plan(self, plan_id: str) -> dict:
        meta = self.store.read_range(plan_id, META_ROW, 1, len(META_FIELDS), 2)
        plan = {"id": plan_id}
        for field, row in zip(META_FIELDS, meta):
            plan[field] = _meta_text(row[1])
        if not plan["name"].strip():
            plan["name"] = plan_id

        nodes = []
        last = self.store.last_row(plan_id)
        if last >= HEADER_ROW:
            grid = self.store.read_range(plan_id, HEADER_ROW, 1, last - HEADER_ROW + 1, NODE_WIDTH)
            index = resolve_header(grid[0])
            if "id" not in index:
                logger.warning("Plan %r has no ID column in its header row; nodes skipped", plan_id)
            else:
                for row in grid[1:]:
                    if not parse_text(row[index["id"]]).strip():
                        continue
                    nodes.append(row_to_node(row, index))
        plan["nodes"] = nodes
        return plan

    # ── Writes ───────────────────────────────────────────────────────────

    def invalidate(self) -> None:
        self.cache.delete_cached(ALL_PLANS_KEY)

    def ensure_template(self) -> None:
        """Create the hidden template table when it is missing."""
        if self.store.has_table(TEMPLATE_TABLE):
            return
        self.store.create_table(TEMPLATE_TABLE, hidden=True)
        self.store.write_range(TEMPLATE_TABLE, META_ROW, 1, [[label, ""] for label in META_LABELS])
        self.store.write_range(TEMPLATE_TABLE, HEADER_ROW, 1, [header_row()])
        logger.info("Created plan template table %r", TEMPLATE_TABLE)

    def save(self, plan_id: str, plan_data: dict) -> dict:
        """Create or overwrite a plan. Returns ``{"id", "node_count"}``."""
        validate_plan_id(plan_id)
        if not isinstance(plan_data, dict):
            raise ValidationError("Plan data must be an object")
        nodes = self._prepare_nodes(plan_data.get("nodes") or [])
        meta = [
            [label, _meta_text(plan_data.get(field))]
            for field, label in zip(META_FIELDS, META_LABELS)
        ]

        try:
            if not self.store.has_table(plan_id):
                self.ensure_template()
                self.store.duplicate_table(TEMPLATE_TABLE, plan_id)
                logger.info("Created plan %r from template", plan_id)
            self.store.write_range(plan_id, META_ROW, 1, meta)
            self.store.write_range(plan_id, HEADER_ROW, 1, [header_row()])
            self._replace_nodes(plan_id, nodes)
        finally:
            self.invalidate()
        logger.info("Saved plan %r (%d nodes)", plan_id, len(nodes))
        return {"id": plan_id, "node_count": len(nodes)}

    def delete(self, plan_id: str) -> dict:
        if plan_id == CURRENT_PLAN_ID:
            raise ValidationError("The current plan cannot be deleted")
        if not isinstance(plan_id, str) or is_reserved(plan_id) or not self.store.has_table(plan_id):
            raise NotFoundError(resource="Plan", resource_id=plan_id)
        try:
            self.store.delete_table(plan_id)
        finally:
            self.invalidate()
        logger.info("Deleted plan %r", plan_id)
        return {"id": plan_id}

    def batch_update(self, plan_id: str, updates: list) -> dict:
        """Merge partial field sets onto nodes by id and rewrite the node block.

        Updates naming an unknown node id are skipped. When nothing matched,
        the store is left untouched.
        """
        if not isinstance(updates, list):
            raise ValidationError("Updates must be a list")
        plan = self.get(plan_id)
        nodes = plan["nodes"]
        by_id = {node["id"]: node for node in nodes}

        applied = 0
        for update in updates:
            if not isinstance(update, dict) or "id" not in update:
                raise ValidationError("Each update needs an 'id'", details={"update": update})
            node = by_id.get(parse_text(update["id"]).strip())
            if node is None:
                logger.debug("Batch update for plan %r skipped unknown node %r", plan_id, update["id"])
                continue
            fields = normalize_fields(update)
            node.update({f: v for f, v in fields.items() if f in EDITABLE_FIELDS})
            applied += 1

        if applied:
            self._check_tree(nodes)
            try:
                self._replace_nodes(plan_id, nodes)
            finally:
                self.invalidate()
            logger.info("Batch-updated %d node(s) in plan %r", applied, plan_id)
        return {"id": plan_id, "updated": applied, "ignored": len(updates) - applied}

    # ── Helpers ──────────────────────────────────────────────────────────

    def _prepare_nodes(self, raw_nodes) -> list[dict]:
        if not isinstance(raw_nodes, list):
            raise ValidationError("Nodes must be a list")
        nodes = []
        for position, item in enumerate(raw_nodes):
            if not isinstance(item, dict):
                raise ValidationError(f"Node #{position} must be an object")
            node = normalize_node(item)
            node["id"] = node["id"].strip()
            if not node["id"]:
                raise ValidationError(f"Node #{position} has no id")
            nodes.append(node)
        self._check_tree(nodes)
        return nodes

    def _check_tree(self, nodes: list[dict]) -> None:
        report = check_tree(nodes)
        if report.duplicates:
            raise ValidationError(
                f"Duplicate node ids: {', '.join(report.duplicates)}",
                details=report.to_dict(),
            )
        if report.dangling or report.cycles:
            if self.strict_tree:
                raise ValidationError(
                    "Reporting lines must form a forest (no missing parents, no cycles)",
                    details=report.to_dict(),
                )
            logger.warning(
                "Tolerating reporting-line problems: %d dangling parent(s), %d cycle(s)",
                len(report.dangling), len(report.cycles),
            )

    def _replace_nodes(self, plan_id: str, nodes: list[dict]) -> None:
        last = self.store.last_row(plan_id)
        if last >= FIRST_NODE_ROW:
            self.store.clear_range(plan_id, FIRST_NODE_ROW, 1, last - FIRST_NODE_ROW + 1, NODE_WIDTH)
        if not nodes:
            return
        stamp = self._clock().isoformat()
        self.store.write_range(plan_id, FIRST_NODE_ROW, 1, [node_to_row(n, stamp) for n in nodes])

"""
Reporting-line checks for a plan's node list.

Nodes reference their manager through ``parent_id``. Nothing in the store
enforces those references, so this module reports the three ways a node list
can stop being a forest:

    - duplicate ids
    - dangling parents (``parent_id`` not present in the same plan)
    - cycles (following ``parent_id`` returns to the starting node)

Usage:
    report = check_tree(nodes)
    if report.dangling:
        ...
"""

from dataclasses import dataclass, field


@dataclass
class TreeReport:
    duplicates: list[str] = field(default_factory=list)
    dangling: list[str] = field(default_factory=list)   # ids of nodes whose parent is missing
    cycles: list[list[str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.duplicates or self.dangling or self.cycles)

    def to_dict(self) -> dict:
        return {
            "duplicates": self.duplicates,
            "dangling": self.dangling,
            "cycles": self.cycles,
        }


def check_tree(nodes: list[dict]) -> TreeReport:
    report = TreeReport()
    parents: dict[str, str | None] = {}
    for node in nodes:
        node_id = node["id"]
        if node_id in parents and node_id not in report.duplicates:
            report.duplicates.append(node_id)
        parents[node_id] = node.get("parent_id")

    for node_id, parent_id in parents.items():
        if parent_id is not None and parent_id not in parents:
            report.dangling.append(node_id)

    # Walk upwards from every node; colours: 1 = on current path, 2 = done.
    state: dict[str, int] = {}
    for start in parents:
        if state.get(start):
            continue
        path: list[str] = []
        current = start
        while current is not None and current in parents and not state.get(current):
            state[current] = 1
            path.append(current)
            current = parents[current]
        if current is not None and state.get(current) == 1:
            report.cycles.append(path[path.index(current):])
        for visited in path:
            state[visited] = 2
    return report

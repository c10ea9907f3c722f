# flowmend/structural/checker.py
from __future__ import annotations

from typing import Dict, Any, Set

from flowmend.report import SubReport
from flowmend.structural.schema import conforms
from flowmend.utils.logger import get_logger

logger = get_logger("structure")


def layout_position(index: int) -> list:
    """Evenly spaced left-to-right coordinate for the node at `index`."""
    return [250 + index * 250, 300]


def validate_structure(workflow: Dict[str, Any]) -> SubReport:
    """
    Check the document shape the execution engine needs before it can even
    read the graph: workflow-level fields, then every node's own fields.

    A missing or non-list `nodes` is reported alone and ends the check, since
    nothing below it can be interpreted.
    """
    report = SubReport("structure")

    if not isinstance(workflow, dict):
        report.error("Workflow must be a JSON object")
        return report

    nodes = workflow.get("nodes")
    if not isinstance(nodes, list):
        report.error("Workflow must have a nodes array")
        return report

    if not workflow.get("name"):
        report.error("Workflow must have a name")

    if len(nodes) == 0:
        report.error("Workflow must have at least one node")

    if not isinstance(workflow.get("connections"), dict):
        report.warning("Workflow has no connections defined")

    if workflow.get("settings") is None:
        report.warning(
            "Workflow should have settings object (even if empty)",
            suggestion='Add "settings": {} to workflow',
        )

    if "active" not in workflow:
        report.warning("Workflow should have active field (set to false)")

    seen_ids: Set[str] = set()
    seen_names: Set[str] = set()
    for index, node in enumerate(nodes):
        label = f"Node {index + 1}"
        if not isinstance(node, dict):
            report.error(f"{label}: must be an object")
            continue

        raw_name = node.get("name")
        name = raw_name if isinstance(raw_name, str) else None
        shown = name or "unnamed"

        if not node.get("id"):
            report.error(f"{label} ({shown}): Missing id", node=name)
        elif str(node["id"]) in seen_ids:
            report.error(
                f'{label} ({shown}): Duplicate id "{node["id"]}"',
                suggestion=f'Give node "{shown}" a unique id',
                node=name,
            )
        else:
            seen_ids.add(str(node["id"]))

        if raw_name and name is None:
            report.error(
                f"{label}: name must be a string, got {type(raw_name).__name__}",
                suggestion=f'Give node {index + 1} a plain text name',
            )
        elif not name:
            report.error(f"{label}: Missing name")
        elif name in seen_names:
            report.error(
                f'{label}: Duplicate name "{name}" (connections address nodes by name)',
                suggestion=f'Rename one of the nodes called "{name}"',
                node=name,
            )
        else:
            seen_names.add(name)

        if not node.get("type"):
            report.error(f"{label} ({shown}): Missing type", node=name)

        if not node.get("typeVersion"):
            report.warning(
                f"{label} ({shown}): Missing typeVersion",
                suggestion=f'Add typeVersion: 1 to node "{shown}"',
                node=name,
            )

        if not conforms(node.get("position"), "position"):
            x, y = layout_position(index)
            report.warning(
                f"{label} ({shown}): Invalid or missing position",
                suggestion=f'Add position: [{x}, {y}] to node "{shown}"',
                node=name,
            )

        params = node.get("parameters")
        if params is None:
            report.warning(f"{label} ({shown}): Missing parameters object", node=name)
        elif not isinstance(params, dict):
            report.warning(f"{label} ({shown}): parameters must be an object", node=name)

    logger.debug("structure: %d error(s), %d warning(s)", len(report.errors), len(report.warnings))
    return report

# flowmend/structural/connections.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
import json

from flowmend.catalog.categories import (
    AI_LANGUAGE_MODEL,
    AI_MEMORY,
    AI_TOOL,
    LEGACY_NEXT,
    MAIN,
    NodeCategory,
)
from flowmend.catalog.registry import NodeCatalog, default_catalog
from flowmend.report import SubReport
from flowmend.structural.schema import conforms
from flowmend.utils.graph import has_channel_edge, node_list, node_name
from flowmend.utils.logger import get_logger

logger = get_logger("connections")


def connection_snippet(src: str, dst: str, channel: str) -> str:
    """Minimal connections entry wiring `src` to `dst` on `channel`."""
    return json.dumps({src: {channel: [[{"node": dst, "type": channel, "index": 0}]]}})


def validate_connections(workflow: Dict[str, Any], catalog: Optional[NodeCatalog] = None) -> SubReport:
    """
    Validate the connection map entry by entry.

    A malformed entry is reported and skipped; its siblings are still
    checked, so one pass lists every defect.
    """
    report = SubReport("connections")
    catalog = catalog or default_catalog()
    nodes = node_list(workflow)
    node_names = {node_name(n) for n in nodes} - {None}

    connections = workflow.get("connections") if isinstance(workflow, dict) else None
    if connections is None:
        report.warning("No connections defined in workflow")
        connections = {}
    elif not isinstance(connections, dict):
        report.error("connections must be an object keyed by source node name")
        connections = {}

    for src, outputs in connections.items():
        if src not in node_names:
            report.error(f'Connection from unknown node: "{src}"', node=src)
            continue
        if not isinstance(outputs, dict):
            report.error(f'Connections of "{src}" must be an object keyed by connection type', node=src)
            continue

        for channel, slots in outputs.items():
            if not isinstance(slots, list):
                report.error(f'Connection type "{channel}" from "{src}" must be an array', node=src)
                continue

            for slot_index, slot in enumerate(slots):
                if not isinstance(slot, list):
                    report.error(f'Connection {slot_index} from "{src}" must be array of arrays', node=src)
                    continue

                for edge in slot:
                    _check_edge(src, edge, node_names, report)

    _check_ai_wiring(workflow, nodes, catalog, report)

    logger.debug("connections: %d error(s), %d warning(s)", len(report.errors), len(report.warnings))
    return report


def _check_edge(src: str, edge: Any, node_names: set, report: SubReport) -> None:
    if not isinstance(edge, dict):
        report.error(f'Invalid connection object from "{src}"', node=src)
        return
    dst = edge.get("node")
    if not dst:
        report.error(f'Connection from "{src}" missing node name', node=src)
        return
    if not isinstance(dst, str):
        report.error(
            f'Connection from "{src}": node must be a string, got {type(dst).__name__}',
            suggestion="Reference the target node by its name",
            node=src,
        )
        return

    if dst not in node_names:
        report.error(
            f'Connection to unknown node: "{dst}" from "{src}"',
            suggestion=f'Check if node name "{dst}" matches a node name in the workflow',
            node=src,
        )

    label = edge.get("type")
    if not label:
        report.error(f'Connection from "{src}" to "{dst}" missing type', node=src)
    elif label == LEGACY_NEXT:
        report.error(
            f'Connection type "{LEGACY_NEXT}" is invalid - use "{MAIN}" instead',
            suggestion=f'Change connection type from "{LEGACY_NEXT}" to "{MAIN}"',
            node=src,
        )

    if "index" in edge and not conforms(edge["index"], "edge_index"):
        report.warning(
            f'Connection from "{src}" to "{dst}" has invalid index {edge["index"]!r}',
            suggestion="Use a non-negative integer input index (usually 0)",
            node=src,
        )


def _check_ai_wiring(workflow: Dict[str, Any], nodes: List[Dict[str, Any]], catalog: NodeCatalog, report: SubReport) -> None:
    by_category: Dict[NodeCategory, List[str]] = {}
    for n in nodes:
        name = node_name(n)
        if name:
            by_category.setdefault(catalog.category_of(n), []).append(name)

    agents = by_category.get(NodeCategory.AGENT, [])
    if not agents:
        return
    agent = agents[0]

    models = by_category.get(NodeCategory.LANGUAGE_MODEL, [])
    if models and not any(has_channel_edge(workflow, m, agent, AI_LANGUAGE_MODEL) for m in models):
        model = models[0]
        report.error(
            f'Language model "{model}" must connect to AI Agent "{agent}" via "{AI_LANGUAGE_MODEL}"',
            suggestion=f"Add connection: {connection_snippet(model, agent, AI_LANGUAGE_MODEL)}",
            node=model,
        )

    for category, channel in ((NodeCategory.CALCULATOR_TOOL, AI_TOOL), (NodeCategory.MEMORY_BUFFER, AI_MEMORY)):
        for sub in by_category.get(category, []):
            if not any(has_channel_edge(workflow, sub, a, channel) for a in agents):
                report.warning(
                    f'Node "{sub}" should connect to AI Agent "{agent}" via "{channel}"',
                    suggestion=f"Add connection: {connection_snippet(sub, agent, channel)}",
                    node=sub,
                )

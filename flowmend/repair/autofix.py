# flowmend/repair/autofix.py
# Best-effort repair of generated workflows. Never raises on bad input:
# anything missing or malformed is replaced by a default.

from __future__ import annotations

import copy
import re
from typing import Any, Dict, List, Optional, Set, Union

from flowmend.catalog.categories import MAIN, NodeCategory, normalize_channel
from flowmend.catalog.registry import NodeCatalog, default_catalog, slugify
from flowmend.report import ValidationReport
from flowmend.semantic.intent import IntentAnalysis, WorkflowKind, cron_from_time
from flowmend.structural.checker import layout_position
from flowmend.structural.schema import conforms
from flowmend.utils.graph import has_channel_edge
from flowmend.utils.logger import get_logger

logger = get_logger("autofix")

X_STEP = 250


def unique_name(base: str, used: Set[str]) -> str:
    if base not in used:
        return base
    counter = 1
    while f"{base} {counter}" in used:
        counter += 1
    return f"{base} {counter}"


def unique_id(base: str, used: Set[str]) -> str:
    if base not in used:
        return base
    counter = 1
    while f"{base}-{counter}" in used:
        counter += 1
    return f"{base}-{counter}"


def readable_credential_name(value: str, kind: str) -> str:
    """'USER_SMTP_CREDENTIAL_ID' -> 'USER SMTP'; falls back to '<kind> credential'."""
    label = value.replace("_", " ")
    label = re.sub(r"\s*ID$", "", label)
    label = label.replace("CREDENTIAL", "")
    label = re.sub(r"\s+", " ", label).strip()
    return label or f"{kind} credential"


class _Repair:
    """Working state of one auto_fix call."""

    def __init__(self, workflow: Dict[str, Any], intent: Optional[IntentAnalysis], catalog: NodeCatalog):
        self.doc = workflow
        self.intent = intent
        self.catalog = catalog
        self.fresh: List[Dict[str, Any]] = []

    @property
    def nodes(self) -> List[Dict[str, Any]]:
        return self.doc["nodes"]

    def categories(self) -> List[NodeCategory]:
        return [self.catalog.category_of(n) for n in self.nodes]

    def is_fresh(self, node: Dict[str, Any]) -> bool:
        return any(node is f for f in self.fresh)

    def used_names(self) -> Set[str]:
        return {n["name"] for n in self.nodes if isinstance(n.get("name"), str)}

    # ---- node synthesis ----
    def synthesize(self, category: NodeCategory) -> Optional[Dict[str, Any]]:
        spec = self.catalog.spec_for(category)
        if spec is None:
            return None
        parameters = None
        if category is NodeCategory.SCHEDULE_TRIGGER:
            time = self.intent.schedule_time if self.intent else None
            parameters = {"rule": {"interval": [{"field": "cronExpression", "cronExpression": cron_from_time(time)}]}}
        node = self.catalog.new_node(category, name=unique_name(spec.display_name, self.used_names()),
                                     parameters=parameters)
        self.fresh.append(node)
        return node

    def prepend(self, category: NodeCategory, reason: str) -> None:
        node = self.synthesize(category)
        if node is None:
            logger.warning("auto-fix: catalog has no %s template (%s)", category.value, reason)
            return
        self.nodes.insert(0, node)
        logger.info("auto-fix: added %s (%s)", node["name"], reason)

    def append(self, category: NodeCategory, reason: str) -> None:
        node = self.synthesize(category)
        if node is None:
            logger.warning("auto-fix: catalog has no %s template (%s)", category.value, reason)
            return
        self.nodes.append(node)
        logger.info("auto-fix: added %s (%s)", node["name"], reason)


def auto_fix(
    workflow: Dict[str, Any],
    report: Optional[ValidationReport] = None,
    intent: Union[IntentAnalysis, Dict[str, Any], None] = None,
    catalog: Optional[NodeCatalog] = None,
    reflow_positions: bool = False,
) -> Dict[str, Any]:
    """
    Return a repaired copy of `workflow`; the input is never modified.

    Repairs, in order: workflow-level defaults, a schedule trigger for digest
    workflows, a default trigger when nothing starts the workflow, node
    categories the intent requires, per-node defaults, credential shape,
    layout, wiring of synthesized triggers and AI sub-nodes, and finally
    removal of dangling edges with slot-shape coercion.

    The result is not guaranteed to validate; run validate_complete again.
    With `reflow_positions` every node is laid out left to right again;
    by default only new nodes and nodes without a usable position move.
    """
    catalog = catalog or default_catalog()
    intent = IntentAnalysis.from_dict(intent)
    fixed = copy.deepcopy(workflow) if isinstance(workflow, dict) else {}
    if report is not None:
        logger.info("auto-fix: repairing workflow with %d error(s), %d warning(s)",
                    len(report.errors), len(report.warnings))

    state = _Repair(fixed, intent, catalog)

    # 1) Workflow-level defaults
    if not isinstance(fixed.get("settings"), dict):
        fixed["settings"] = {}
    if fixed.get("active") is None:
        fixed["active"] = False
    if not fixed.get("versionId"):
        fixed["versionId"] = "1"
    if not isinstance(fixed.get("nodes"), list):
        fixed["nodes"] = []
    else:
        kept = [n for n in fixed["nodes"] if isinstance(n, dict)]
        if len(kept) != len(fixed["nodes"]):
            logger.info("auto-fix: dropped %d non-object node entries", len(fixed["nodes"]) - len(kept))
        fixed["nodes"] = kept

    # 2) Digest workflows run on a schedule
    if (intent is not None and intent.workflow_kind is WorkflowKind.SCHEDULED_DIGEST
            and NodeCategory.SCHEDULE_TRIGGER not in state.categories()):
        state.prepend(NodeCategory.SCHEDULE_TRIGGER, "scheduled digest without schedule")

    # 3) Something has to start the workflow
    if state.nodes and not any(c.starts_workflow for c in state.categories()):
        if intent is not None and intent.hints_schedule:
            state.prepend(NodeCategory.SCHEDULE_TRIGGER, "no trigger, intent is scheduled")
        else:
            state.prepend(NodeCategory.WEBHOOK_TRIGGER, "no trigger")

    # 4) Categories the intent requires
    for required in intent.required_node_categories if intent is not None else ():
        if catalog.satisfies(state.nodes, required):
            continue
        category = catalog.classify(required)
        if category is NodeCategory.UNKNOWN:
            logger.warning("auto-fix: cannot synthesize unknown node type %r", required)
            continue
        state.append(category, f"required {required}")

    # 5) Per-node defaults; existing nodes keep their ids ahead of new ones
    _normalize_nodes(state)

    # 6) Credential shape
    for node in state.nodes:
        _normalize_credentials(node, catalog)

    # 7) Layout
    _place_nodes(state, reflow_positions)

    connections = fixed.get("connections")
    if not isinstance(connections, dict):
        connections = {}

    # 8) Wire synthesized triggers to the first node that does the work
    target = next(
        (n for n, c in zip(state.nodes, state.categories()) if not c.is_trigger and not c.is_ai_subnode),
        None,
    )
    for node in state.fresh:
        if not catalog.category_of(node).is_trigger or target is None:
            continue
        if node["name"] not in connections:
            connections[node["name"]] = {MAIN: [[{"node": target["name"], "type": MAIN, "index": 0}]]}
            logger.info("auto-fix: connected %s -> %s", node["name"], target["name"])

    # 9) Drop dangling edges, coerce slot shapes
    fixed["connections"] = _clean_connections(connections, state.used_names())

    # AI sub-nodes feed their agent on a dedicated channel
    _wire_ai_subnodes(state)

    return fixed


def _normalize_nodes(state: _Repair) -> None:
    used_names = state.used_names()
    used_ids: Set[str] = set()
    ordered = sorted(range(len(state.nodes)), key=lambda i: state.is_fresh(state.nodes[i]))
    for i in ordered:
        node = state.nodes[i]
        if not isinstance(node.get("name"), str) or not node["name"]:
            spec = state.catalog.spec_for(state.catalog.category_of(node))
            node["name"] = unique_name(spec.display_name if spec else f"Node {i + 1}", used_names)
            used_names.add(node["name"])
            logger.info("auto-fix: named node %d %r", i + 1, node["name"])

        node_id = node.get("id")
        if not node_id or str(node_id) in used_ids:
            node["id"] = unique_id(slugify(node["name"]) or f"node-{i}", used_ids)
        used_ids.add(str(node["id"]))

        if not node.get("typeVersion"):
            node["typeVersion"] = 1
        if not isinstance(node.get("parameters"), dict):
            node["parameters"] = {}


def _normalize_credentials(node: Dict[str, Any], catalog: NodeCatalog) -> None:
    creds = node.get("credentials")
    if creds is None:
        return
    spec = catalog.spec_for(catalog.category_of(node))
    placeholder = (spec.credential_placeholder() if spec else None) or {}
    if isinstance(creds, str):
        kind = next(iter(placeholder), None)
        if kind is None:
            logger.warning("auto-fix: dropping bare credential on %r, no credential kind known", node.get("name"))
            del node["credentials"]
            return
        creds = {kind: creds}
    if not isinstance(creds, dict):
        del node["credentials"]
        return

    fixed: Dict[str, Any] = {}
    for kind, value in creds.items():
        if isinstance(value, str) and not value.strip():
            # An empty reference is a missing credential, not an id.
            if kind in placeholder:
                fixed[kind] = dict(placeholder[kind])
                logger.info("auto-fix: empty %s credential of %r replaced by placeholder", kind, node.get("name"))
            else:
                logger.info("auto-fix: dropped empty %s credential of %r", kind, node.get("name"))
        elif isinstance(value, str):
            fixed[kind] = {"id": value, "name": readable_credential_name(value, kind)}
            logger.info("auto-fix: wrapped %s credential of %r", kind, node.get("name"))
        else:
            fixed[kind] = value
    if creds and not fixed:
        del node["credentials"]
        return
    node["credentials"] = fixed


def _place_nodes(state: _Repair, reflow: bool) -> None:
    nodes = state.nodes
    if reflow:
        for i, node in enumerate(nodes):
            node["position"] = layout_position(i)
        return

    needs = [state.is_fresh(n) or not conforms(n.get("position"), "position") for n in nodes]
    anchors = [i for i, need in enumerate(needs) if not need]
    if not anchors:
        for i, node in enumerate(nodes):
            node["position"] = layout_position(i)
        return

    first = anchors[0]
    fx, fy = nodes[first]["position"]
    for i in range(first):
        nodes[i]["position"] = [fx - X_STEP * (first - i), fy]

    prev = nodes[first]["position"]
    for i in range(first + 1, len(nodes)):
        if needs[i]:
            if state.is_fresh(nodes[i]):
                nodes[i]["position"] = [prev[0] + X_STEP, prev[1]]
            else:
                nodes[i]["position"] = layout_position(i)
        prev = nodes[i]["position"]


def _coerce_slots(slots: List[Any]) -> List[List[Any]]:
    """[edge, edge] -> [[edge, edge]]; anything else keeps its slot positions."""
    if slots and all(isinstance(s, dict) for s in slots):
        return [slots]
    out: List[List[Any]] = []
    for slot in slots:
        if isinstance(slot, list):
            out.append(slot)
        elif isinstance(slot, dict):
            out.append([slot])
    return out


def _normalize_edge(edge: Dict[str, Any], channel: str) -> Dict[str, Any]:
    out = dict(edge)
    label = out.get("type")
    out["type"] = normalize_channel(label) if isinstance(label, str) and label else channel
    if not conforms(out.get("index"), "edge_index"):
        out["index"] = 0
    return out


def _clean_connections(connections: Dict[str, Any], names: Set[str]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for src, outputs in connections.items():
        if src not in names or not isinstance(outputs, dict):
            logger.info("auto-fix: dropped connections from %r", src)
            continue
        out: Dict[str, List[List[Dict[str, Any]]]] = {}
        for channel, slots in outputs.items():
            if not isinstance(slots, list):
                logger.info("auto-fix: dropped malformed %r connections from %r", channel, src)
                continue
            key = normalize_channel(channel)
            kept: List[List[Dict[str, Any]]] = []
            for slot in _coerce_slots(slots):
                edges = []
                for edge in slot:
                    if isinstance(edge, dict) and isinstance(edge.get("node"), str) and edge["node"] in names:
                        edges.append(_normalize_edge(edge, key))
                    else:
                        logger.info("auto-fix: dropped dangling edge from %r: %r", src, edge)
                kept.append(edges)
            if not any(kept):
                continue
            merged = out.setdefault(key, [])
            for i, edges in enumerate(kept):
                if i < len(merged):
                    merged[i].extend(edges)
                else:
                    merged.append(edges)
        if out:
            cleaned[src] = out
    return cleaned


def _wire_ai_subnodes(state: _Repair) -> None:
    doc = state.doc
    pairs = list(zip(state.nodes, state.categories()))
    agents = [n["name"] for n, c in pairs if c is NodeCategory.AGENT]
    if not agents:
        return
    agent = agents[0]
    for node, category in pairs:
        if not category.is_ai_subnode:
            continue
        channel = state.catalog.output_channel(category)
        # The language model must feed the first agent; tools and memory may feed any.
        targets = [agent] if category is NodeCategory.LANGUAGE_MODEL else agents
        if any(has_channel_edge(doc, node["name"], a, channel) for a in targets):
            continue
        slots = doc["connections"].setdefault(node["name"], {}).setdefault(channel, [])
        edge = {"node": agent, "type": channel, "index": 0}
        if slots:
            slots[0].append(edge)
        else:
            slots.append([edge])
        logger.info("auto-fix: connected %s -> %s via %s", node["name"], agent, channel)

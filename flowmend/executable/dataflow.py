# flowmend/executable/dataflow.py
from __future__ import annotations

from typing import Dict, Any, List, Set, Tuple
import re

import networkx as nx

from flowmend.catalog.categories import NodeCategory
from flowmend.catalog.registry import AGGREGATE_FIELD, NodeCatalog
from flowmend.utils.graph import node_name

# Match references like:
#   $json["foo"]   $json['foo']   $json.foo   $json.foo.toJsonString()
_JSON_FIELD_RE = re.compile(
    r"\$json\s*(?:\[\s*['\"]([^'\"]+)['\"]\s*\]|\.([a-zA-Z_][a-zA-Z0-9_]*))"
)


def extract_json_fields(value: Any) -> Set[str]:
    """
    Top-level `$json` field names referenced anywhere in a parameter value
    (strings inside nested dicts/lists included).
    """
    fields: Set[str] = set()

    def _scan_value(v: Any):
        if isinstance(v, str):
            for m in _JSON_FIELD_RE.finditer(v):
                f1, f2 = m.groups()
                fname = f1 or f2
                if fname:
                    fields.add(fname)
        elif isinstance(v, dict):
            for vv in v.values():
                _scan_value(vv)
        elif isinstance(v, list):
            for vv in v:
                _scan_value(vv)

    _scan_value(value)
    return fields


def aggregate_output_field(node: Dict[str, Any]) -> str:
    params = node.get("parameters") if isinstance(node.get("parameters"), dict) else {}
    field = params.get("destinationFieldName")
    return field if isinstance(field, str) and field else AGGREGATE_FIELD


def mismatched_aggregate_references(
    nodes: List[Dict[str, Any]],
    G: nx.DiGraph,
    catalog: NodeCatalog,
) -> List[Tuple[str, str, str, List[str]]]:
    """
    Agents fed by an Aggregate node whose prompt references `$json` fields,
    none of which is the field the aggregator writes.

    Returns (agent_name, aggregator_name, aggregator_field, referenced_fields)
    for each mismatch. Agents referencing no `$json` field at all are left
    to the prompt check.
    """
    aggregators = [n for n in nodes if catalog.category_of(n) is NodeCategory.AGGREGATOR and node_name(n) in G]
    agents = [n for n in nodes if catalog.category_of(n) is NodeCategory.AGENT and node_name(n) in G]

    out: List[Tuple[str, str, str, List[str]]] = []
    for agg in aggregators:
        downstream = nx.descendants(G, agg["name"])
        field = aggregate_output_field(agg)
        for agent in agents:
            if agent["name"] not in downstream:
                continue
            params = agent.get("parameters") if isinstance(agent.get("parameters"), dict) else {}
            referenced = extract_json_fields({k: params.get(k) for k in ("text", "prompt")})
            if referenced and field not in referenced:
                out.append((agent["name"], agg["name"], field, sorted(referenced)))
    return out

# flowmend/utils/graph.py
from __future__ import annotations

from typing import Dict, Any, Iterable, Iterator, List, Optional, Set, Tuple
import networkx as nx


def node_name(node: Any) -> Optional[str]:
    """The node's name when it is a non-empty string, else None."""
    name = node.get("name") if isinstance(node, dict) else None
    return name if isinstance(name, str) and name else None


def iter_edges(workflow: Dict[str, Any]) -> Iterator[Tuple[str, str, Dict[str, Any]]]:
    """
    Yield (src_name, channel, edge) for every edge object in an n8n-style
    'connections' map. Supports shapes like:
      connections[src]["main"] = [
         [ {"node": "B", "type": "main", "index": 0}, {"node": "C", ...} ],   # output slot with two targets
         [ {"node": "D", "type": "main", "index": 0} ]                         # second output slot
      ]
    and the flat form connections[src]["main"] = [ {...}, {...} ].
    Malformed entries are skipped; the connection validator reports them.
    """
    connections = workflow.get("connections") if isinstance(workflow, dict) else None
    if not isinstance(connections, dict):
        return
    for src_name, outs in connections.items():
        if not isinstance(outs, dict):
            continue
        for channel, slots in outs.items():
            if not isinstance(slots, list):
                continue
            for slot in slots:
                if isinstance(slot, dict):
                    yield src_name, channel, slot
                    continue
                if not isinstance(slot, list):
                    continue
                for edge in slot:
                    if isinstance(edge, dict):
                        yield src_name, channel, edge


def extract_edges(workflow: Dict[str, Any]) -> List[Tuple[str, str, str]]:
    """Return de-duplicated (src, dst, channel) triples for edges that name a destination."""
    seen: Set[Tuple[str, str, str]] = set()
    edges: List[Tuple[str, str, str]] = []
    for src, channel, edge in iter_edges(workflow):
        dst = edge.get("node")
        if not isinstance(dst, str) or not dst:
            continue
        key = (str(src), dst, str(channel))
        if key not in seen:
            seen.add(key)
            edges.append(key)
    return edges


def referenced_names(workflow: Dict[str, Any]) -> Set[str]:
    """Every node name appearing in the connection map, as a source key or as a destination."""
    names: Set[str] = set()
    connections = workflow.get("connections") if isinstance(workflow, dict) else None
    if isinstance(connections, dict):
        names.update(str(k) for k in connections.keys())
    for _src, dst, _channel in extract_edges(workflow):
        names.add(dst)
    return names


def build_graph(workflow: Dict[str, Any]) -> nx.DiGraph:
    """
    Build a directed graph keyed by node name.

    Only edges whose two endpoints are declared nodes are added. Each edge
    carries the set of channels it travels on under the 'channels' attribute.
    """
    G = nx.DiGraph()
    nodes = workflow.get("nodes") if isinstance(workflow, dict) else None
    for n in nodes if isinstance(nodes, list) else []:
        name = node_name(n)
        if name:
            G.add_node(name, type=n.get("type"))

    for src, dst, channel in extract_edges(workflow):
        if src not in G or dst not in G:
            continue
        if G.has_edge(src, dst):
            G.edges[src, dst]["channels"].add(channel)
        else:
            G.add_edge(src, dst, channels={channel})
    return G


def reachable_from(G: nx.DiGraph, sources: Iterable[str]) -> Set[str]:
    """Names reachable from any of `sources` (sources included)."""
    reachable: Set[str] = set()
    for s in sources:
        if s in G and s not in reachable:
            reachable.add(s)
            reachable |= nx.descendants(G, s)
    return reachable


def has_channel_edge(workflow: Dict[str, Any], src: str, dst: str, channel: str) -> bool:
    """True when `src` has an edge to `dst` listed under connections[src][channel]."""
    return any(
        s == src and c == channel and e.get("node") == dst
        for s, c, e in iter_edges(workflow)
    )


def node_list(workflow: Dict[str, Any]) -> List[Dict[str, Any]]:
    """The document's node entries that are objects; anything else is skipped."""
    nodes = workflow.get("nodes") if isinstance(workflow, dict) else None
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, dict)]

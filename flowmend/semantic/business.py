# flowmend/semantic/business.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import networkx as nx

from flowmend.catalog.categories import CANONICAL_TRIGGER_LABELS, NodeCategory
from flowmend.catalog.registry import AGGREGATE_FIELD, NodeCatalog, default_catalog
from flowmend.report import SubReport
from flowmend.semantic.intent import IntentAnalysis, WorkflowKind
from flowmend.utils.graph import build_graph, node_list, node_name, reachable_from, referenced_names
from flowmend.utils.logger import get_logger

logger = get_logger("business")

IntentLike = Union[IntentAnalysis, Dict[str, Any], None]


def agent_prompt(node: Dict[str, Any]) -> str:
    """The prompt text of an agent node (`text`, falling back to `prompt`)."""
    params = node.get("parameters") or {}
    if not isinstance(params, dict):
        return ""
    prompt = params.get("text") or params.get("prompt") or ""
    return prompt if isinstance(prompt, str) else ""


def _first(nodes: List[Dict[str, Any]], categories: List[NodeCategory], wanted: NodeCategory) -> Optional[Dict[str, Any]]:
    for node, cat in zip(nodes, categories):
        if cat is wanted:
            return node
    return None


def validate_business_logic(
    workflow: Dict[str, Any],
    intent: IntentLike = None,
    catalog: Optional[NodeCatalog] = None,
) -> SubReport:
    """
    Check that the graph implements a coherent automation for its intent:
    an entry point, the node categories the intent asks for, kind-specific
    stages, AI building blocks, and no node left outside the flow.

    Every rule runs; findings accumulate.
    """
    report = SubReport("businessLogic")
    catalog = catalog or default_catalog()
    intent = IntentAnalysis.from_dict(intent)

    nodes = node_list(workflow)
    categories = [catalog.category_of(n) for n in nodes]
    present = set(categories)

    # 1) Entry point
    if not any(c.starts_workflow for c in categories):
        report.error(
            "Workflow must have at least one trigger node (Webhook Trigger, Schedule Trigger or IMAP Email Read)",
            suggestion=f"Add a {CANONICAL_TRIGGER_LABELS[0]}, {CANONICAL_TRIGGER_LABELS[1]}, "
                       f"or {CANONICAL_TRIGGER_LABELS[2]} node",
        )

    if intent is not None:
        # 2) Node categories requested by the analysis
        for required in intent.required_node_categories:
            if not catalog.satisfies(nodes, required):
                report.error(f"Required node missing: {required}", suggestion=f"Add node of type: {required}")

        # 3) Kind-specific rules
        kind = intent.workflow_kind
        if kind is not None and kind.is_mail:
            _check_mail_workflow(workflow, nodes, categories, present, report)
        elif kind is WorkflowKind.SCHEDULED_DIGEST:
            _check_digest_workflow(nodes, categories, present, report)

        # 4) AI building blocks
        ai = intent.ai_requirements
        if ai.needs_ai:
            if NodeCategory.AGENT not in present:
                report.error("AI workflow must have AI Agent node", suggestion="Add an AI Agent node")
            if NodeCategory.LANGUAGE_MODEL not in present:
                report.error(
                    "AI Agent workflow must have a language model node (OpenRouter Chat Model)",
                    suggestion="Add an OpenRouter Chat Model node connected to the agent via ai_languageModel",
                )
            if ai.needs_tools and NodeCategory.CALCULATOR_TOOL not in present:
                report.warning(
                    "AI Agent should have Calculator Tool for calculations",
                    suggestion="Add a Calculator tool node connected via ai_tool",
                )
            if ai.needs_memory and NodeCategory.MEMORY_BUFFER not in present:
                report.warning(
                    "AI Agent should have Buffer Window Memory for context",
                    suggestion="Add a Window Buffer Memory node connected via ai_memory",
                )

    # 5) Connectivity
    if isinstance(workflow.get("connections") if isinstance(workflow, dict) else None, dict):
        _check_connectivity(workflow, nodes, categories, report)

    logger.debug("businessLogic: %d error(s), %d warning(s)", len(report.errors), len(report.warnings))
    return report


def _check_mail_workflow(workflow, nodes, categories, present, report: SubReport) -> None:
    if NodeCategory.MAIL_READER not in present:
        report.error(
            "Email workflow must have IMAP Email Read node",
            suggestion="Add an IMAP Email Read node (n8n-nodes-base.emailReadImap)",
        )

    if NodeCategory.AGENT not in present:
        return
    if NodeCategory.AGGREGATOR not in present:
        report.error(
            "Email workflow with AI Agent must have Aggregate node between IMAP and Agent",
            suggestion='Add Aggregate node: destinationFieldName: "data"',
        )
        return

    # Aggregate present: it must feed the agent, otherwise the agent runs once per e-mail.
    G = build_graph(workflow)
    agent = _first(nodes, categories, NodeCategory.AGENT)
    aggregator = _first(nodes, categories, NodeCategory.AGGREGATOR)
    a_name, g_name = node_name(agent), node_name(aggregator)
    if a_name in G and g_name in G and G.number_of_edges() and not nx.has_path(G, g_name, a_name):
        report.warning(
            f'Aggregate node "{g_name}" does not lead to AI Agent "{a_name}"',
            suggestion=f'Connect "{g_name}" to "{a_name}" so the agent receives all e-mails at once',
            node=g_name,
        )


def _check_digest_workflow(nodes, categories, present, report: SubReport) -> None:
    if NodeCategory.FEED_READER not in present:
        report.warning(
            "Newsletter workflow should have RSS Feed node to collect articles",
            suggestion="Add an RSS Feed node",
        )
    if NodeCategory.SCHEDULE_TRIGGER not in present:
        report.warning(
            "Newsletter workflow should have Schedule Trigger for automated sending",
            suggestion="Add a Schedule Trigger node",
        )
    if NodeCategory.EMAIL_SENDER not in present:
        report.error("Newsletter workflow must have Email Send node", suggestion="Add a Send Email node")

    agent = _first(nodes, categories, NodeCategory.AGENT)
    aggregator = _first(nodes, categories, NodeCategory.AGGREGATOR)
    if agent is None or aggregator is None:
        return
    agg_params = aggregator.get("parameters") if isinstance(aggregator.get("parameters"), dict) else {}
    field = agg_params.get("destinationFieldName") or AGGREGATE_FIELD
    reference = f"$json.{field}"
    if reference not in agent_prompt(agent):
        report.warning(
            f"AI Agent prompt should use {{{{ {reference}.toJsonString() }}}} for aggregated items",
            suggestion=f"Update AI Agent prompt to use {{{{ {reference}.toJsonString() }}}}",
            node=node_name(agent),
        )


def _check_connectivity(workflow, nodes, categories, report: SubReport) -> None:
    connected = referenced_names(workflow)
    isolated = set()
    for node in nodes:
        name = node_name(node)
        if not name:
            continue
        if name not in connected:
            isolated.add(name)
            report.warning(
                f'Node "{name}" is not connected to the workflow',
                suggestion=f'Connect node "{name}" to the workflow',
                node=name,
            )

    entries = [node_name(n) for n, c in zip(nodes, categories) if c.starts_workflow and node_name(n)]
    if not entries:
        return
    reachable = reachable_from(build_graph(workflow), entries)
    for node, cat in zip(nodes, categories):
        name = node_name(node)
        if not name or name in isolated or name in reachable or cat.is_ai_subnode:
            continue
        report.warning(
            f'Node "{name}" is not reachable from any trigger',
            suggestion=f'Connect "{name}" downstream of a trigger or remove it',
            node=name,
        )

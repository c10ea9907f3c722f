# flowmend/executable/parameters.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Optional
import re

from flowmend.catalog.categories import NodeCategory
from flowmend.catalog.registry import AGGREGATE_FIELD, NodeCatalog, default_catalog
from flowmend.executable.dataflow import mismatched_aggregate_references
from flowmend.report import SubReport
from flowmend.semantic.business import agent_prompt
from flowmend.utils.graph import build_graph, node_list, node_name
from flowmend.utils.logger import get_logger

logger = get_logger("parameters")

RECIPIENT_KEYS = ("toEmail", "sendTo", "to")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_CRON_RE = re.compile(r"^([\d\*/,-]+)\s+([\d\*/,-]+)\s+([\d\*/,-]+)\s+([\d\*/,-]+)\s+([\d\*/,-]+)(\s+([\d\*/,-]+))?$")
_PLACEHOLDER_RE = re.compile(r"\bTODO\b|\bPLACEHOLDER\b|(?:^|\s)\?(?:\s|$)")


def _has_nonempty(d: Dict[str, Any], key: str) -> bool:
    v = d.get(key)
    if isinstance(v, (list, dict)):
        return len(v) > 0
    return v is not None and str(v).strip() != ""


def _is_expression(value: Any) -> bool:
    """Engine expressions are evaluated at run time and cannot be checked statically."""
    return isinstance(value, str) and ("{{" in value or value.startswith("="))


def _looks_like_url(url: str) -> bool:
    t = (url or "").strip().lower()
    return t.startswith("http://") or t.startswith("https://")


def _looks_like_cron(expr: str) -> bool:
    return bool(_CRON_RE.match((expr or "").strip()))


def _plausible_recipient(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if _is_expression(value) or "USER_EMAIL" in value:
        return True
    return all(_EMAIL_RE.match(part.strip()) for part in value.split(",") if part.strip())


def _iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from _iter_strings(v)
    elif isinstance(value, list):
        for v in value:
            yield from _iter_strings(v)


def _cron_expressions(params: Dict[str, Any]) -> Iterator[str]:
    if isinstance(params.get("cronExpression"), str):
        yield params["cronExpression"]
    rule = params.get("rule")
    intervals = rule.get("interval") if isinstance(rule, dict) else None
    for item in intervals if isinstance(intervals, list) else []:
        if isinstance(item, dict) and isinstance(item.get("cronExpression"), str):
            yield item["cronExpression"]


# ---------- Per-category rules ----------

def _check_webhook(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "path"):
        report.error(f'Webhook node "{name}": Missing path parameter',
                     suggestion=f'Set a unique path on webhook "{name}"', node=name)
    if not _has_nonempty(params, "httpMethod"):
        report.warning(f'Webhook node "{name}": Missing httpMethod (defaults to GET)', node=name)


def _check_schedule(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "rule") and not _has_nonempty(params, "cronExpression"):
        report.warning(f'Schedule node "{name}": Missing schedule rule (engine default interval applies)',
                       node=name)
        return
    for expr in _cron_expressions(params):
        if not _is_expression(expr) and not _looks_like_cron(expr):
            report.warning(f'Schedule node "{name}": Invalid cron expression "{expr}"',
                           suggestion='Use five cron fields, e.g. "0 6 * * *"', node=name)


def _check_mail_reader(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "mailbox"):
        report.warning(f'IMAP node "{name}": Missing mailbox (defaults to INBOX)', node=name)


def _check_feed_reader(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "url") and not _has_nonempty(params, "urls"):
        report.error(f'RSS Feed node "{name}": Missing feed url', node=name)


def _check_aggregator(name: str, params: Dict[str, Any], report: SubReport) -> None:
    field = params.get("destinationFieldName")
    if not field:
        report.error(
            f'Aggregate node "{name}": Missing destinationFieldName (should be "{AGGREGATE_FIELD}")',
            suggestion=f'Set destinationFieldName: "{AGGREGATE_FIELD}" in Aggregate node',
            node=name,
        )
    elif field != AGGREGATE_FIELD:
        report.warning(
            f'Aggregate node "{name}": destinationFieldName should be "{AGGREGATE_FIELD}" for email workflows',
            node=name,
        )


def _check_agent(name: str, params: Dict[str, Any], report: SubReport) -> None:
    prompt = agent_prompt({"parameters": params})
    if not prompt:
        report.error(f'AI Agent node "{name}": Missing prompt text', node=name)
    elif "$json" not in prompt:
        report.warning(
            f'AI Agent node "{name}": Prompt should reference $json data',
            suggestion="Reference the incoming items in the prompt, e.g. {{ $json.data.toJsonString() }}",
            node=name,
        )


def _check_language_model(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "model"):
        report.error(f'Language model node "{name}": Missing model parameter', node=name)


def _check_email_sender(name: str, params: Dict[str, Any], report: SubReport) -> None:
    key = next((k for k in RECIPIENT_KEYS if _has_nonempty(params, k)), None)
    if key is None:
        report.error(
            f'Email Send node "{name}": Missing toEmail parameter',
            suggestion=f'Set toEmail: "{{{{USER_EMAIL}}}}" on "{name}"',
            node=name,
        )
    elif not _plausible_recipient(params[key]):
        report.warning(
            f'Email Send node "{name}": toEmail should use {{{{USER_EMAIL}}}} or a valid email',
            node=name,
        )


def _check_http_request(name: str, params: Dict[str, Any], report: SubReport) -> None:
    if not _has_nonempty(params, "url"):
        report.error(f'HTTP Request node "{name}": Missing url parameter', node=name)
    elif not _is_expression(params["url"]) and not _looks_like_url(str(params["url"])):
        report.warning(f'HTTP Request node "{name}": url does not look valid', node=name)


RuleFn = Callable[[str, Dict[str, Any], SubReport], None]

RULES: Dict[NodeCategory, RuleFn] = {
    NodeCategory.WEBHOOK_TRIGGER: _check_webhook,
    NodeCategory.SCHEDULE_TRIGGER: _check_schedule,
    NodeCategory.MAIL_READER: _check_mail_reader,
    NodeCategory.FEED_READER: _check_feed_reader,
    NodeCategory.AGGREGATOR: _check_aggregator,
    NodeCategory.AGENT: _check_agent,
    NodeCategory.LANGUAGE_MODEL: _check_language_model,
    NodeCategory.EMAIL_SENDER: _check_email_sender,
    NodeCategory.HTTP_REQUEST: _check_http_request,
}


def validate_parameters(workflow: Dict[str, Any], catalog: Optional[NodeCatalog] = None) -> SubReport:
    """
    Check that every node carries the parameters it needs to run.

    Errors where execution would certainly fail, warnings where the engine
    has a usable default. Nodes without a parameters object are left to the
    structural check.
    """
    report = SubReport("parameters")
    catalog = catalog or default_catalog()
    nodes = node_list(workflow)

    for index, node in enumerate(nodes):
        params = node.get("parameters")
        if not isinstance(params, dict):
            continue
        name = node_name(node) or f"Node {index + 1}"
        category = catalog.category_of(node)

        rule = RULES.get(category)
        if rule is not None:
            rule(name, params, report)
        else:
            spec = catalog.spec_for(category)
            for key in spec.required_parameters if spec else ():
                if not _has_nonempty(params, key):
                    report.warning(f'{spec.display_name} node "{name}": Missing {key} parameter', node=name)

        if any(_PLACEHOLDER_RE.search(s) for s in _iter_strings(params)):
            report.warning(
                f'Node "{name}": Contains placeholder values (TODO, ?, PLACEHOLDER)',
                suggestion=f'Replace placeholders with real values in node "{name}"',
                node=name,
            )

    # Aggregated output must be what downstream prompts read
    G = build_graph(workflow)
    for agent, aggregator, field, referenced in mismatched_aggregate_references(nodes, G, catalog):
        report.warning(
            f'AI Agent node "{agent}" references $json fields {referenced} '
            f'but upstream Aggregate node "{aggregator}" outputs "{field}"',
            suggestion=f'Reference {{{{ $json.{field} }}}} in the prompt of "{agent}"',
            node=agent,
        )

    logger.debug("parameters: %d error(s), %d warning(s)", len(report.errors), len(report.warnings))
    return report

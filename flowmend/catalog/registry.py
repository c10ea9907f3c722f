# flowmend/catalog/registry.py
from __future__ import annotations

import copy
import dataclasses
import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from flowmend.catalog.categories import (
    AI_LANGUAGE_MODEL,
    AI_MEMORY,
    AI_TOOL,
    MAIN,
    SUBSTRING_RULES,
    NodeCategory,
)
from flowmend.utils.io import PathLike, load_any

DEFAULT_CRON = "0 6 * * *"
AGGREGATE_FIELD = "data"


@dataclass(frozen=True)
class NodeSpec:
    """Static description of one node category as the execution engine knows it."""
    category: NodeCategory
    type_name: str
    display_name: str
    type_version: float = 1
    required_parameters: Tuple[str, ...] = ()
    default_parameters: Mapping[str, Any] = field(default_factory=dict, hash=False)
    credential_kind: Optional[str] = None
    credential_key: Optional[str] = None
    credential_owner: str = "USER"
    output_channel: str = MAIN
    extra_types: Tuple[str, ...] = ()

    def credential_placeholder(self) -> Optional[Dict[str, Dict[str, str]]]:
        if not self.credential_kind:
            return None
        tag = f"{self.credential_owner}_{self.credential_kind.upper()}_CREDENTIAL"
        return {self.credential_key or self.credential_kind: {"id": f"{tag}_ID", "name": f"{tag}_NAME"}}


_DEFAULT_SPECS: Tuple[NodeSpec, ...] = (
    NodeSpec(
        NodeCategory.WEBHOOK_TRIGGER, "n8n-nodes-base.webhook", "Webhook Trigger", 2,
        required_parameters=("path", "httpMethod"),
        default_parameters={"path": "workflow-endpoint", "httpMethod": "POST", "responseMode": "onReceived"},
    ),
    NodeSpec(
        NodeCategory.SCHEDULE_TRIGGER, "n8n-nodes-base.schedule", "Schedule Trigger", 1.2,
        required_parameters=("rule",),
        default_parameters={"rule": {"interval": [{"field": "cronExpression", "cronExpression": DEFAULT_CRON}]}},
        extra_types=("n8n-nodes-base.scheduleTrigger", "n8n-nodes-base.cron"),
    ),
    NodeSpec(NodeCategory.MANUAL_TRIGGER, "n8n-nodes-base.manualTrigger", "Manual Trigger", 1),
    NodeSpec(
        NodeCategory.MAIL_READER, "n8n-nodes-base.emailReadImap", "Email Read (IMAP)", 2,
        required_parameters=("mailbox",),
        default_parameters={"mailbox": "INBOX", "format": "simple", "options": {"forceReconnect": True}},
        credential_kind="imap", credential_key="imap",
        extra_types=("n8n-nodes-base.emailTrigger",),
    ),
    NodeSpec(
        NodeCategory.FEED_READER, "n8n-nodes-base.rssFeed", "RSS Feed", 1,
        default_parameters={"urls": ["https://example.com/feed/"], "limit": 10, "includeFullArticle": False},
        extra_types=("n8n-nodes-base.rssFeedRead",),
    ),
    NodeSpec(
        NodeCategory.AGGREGATOR, "n8n-nodes-base.aggregate", "Aggregate", 1,
        required_parameters=("destinationFieldName",),
        default_parameters={"aggregate": "aggregateAllItemData", "destinationFieldName": AGGREGATE_FIELD},
    ),
    NodeSpec(
        NodeCategory.CODE_TRANSFORM, "n8n-nodes-base.code", "Code", 2,
        default_parameters={"jsCode": "return items;"},
        extra_types=("n8n-nodes-base.function",),
    ),
    NodeSpec(
        NodeCategory.AGENT, "@n8n/n8n-nodes-langchain.agent", "AI Agent", 1.7,
        default_parameters={
            "promptType": "define",
            "text": "Summarize the following items:\n{{ $json.data.toJsonString() }}",
        },
    ),
    NodeSpec(
        NodeCategory.LANGUAGE_MODEL, "@n8n/n8n-nodes-langchain.lmChatOpenRouter", "OpenRouter Chat Model", 1,
        required_parameters=("model",),
        default_parameters={"model": "openai/gpt-4o-mini", "options": {}},
        credential_kind="openrouter", credential_key="openRouterApi", credential_owner="ADMIN",
        output_channel=AI_LANGUAGE_MODEL,
    ),
    NodeSpec(
        NodeCategory.CALCULATOR_TOOL, "@n8n/n8n-nodes-langchain.toolCalculator", "Calculator", 1,
        output_channel=AI_TOOL,
    ),
    NodeSpec(
        NodeCategory.MEMORY_BUFFER, "@n8n/n8n-nodes-langchain.memoryBufferWindow", "Window Buffer Memory", 1.3,
        default_parameters={"contextWindowLength": 5},
        output_channel=AI_MEMORY,
    ),
    NodeSpec(
        NodeCategory.EMAIL_SENDER, "n8n-nodes-base.emailSend", "Send Email", 2.1,
        required_parameters=("toEmail",),
        default_parameters={
            "fromEmail": "{{USER_EMAIL}}",
            "toEmail": "{{USER_EMAIL}}",
            "subject": "Workflow Notification",
            "emailType": "html",
            "message": "{{ $json }}",
        },
        credential_kind="smtp", credential_key="smtp",
    ),
    NodeSpec(
        NodeCategory.HTTP_REQUEST, "n8n-nodes-base.httpRequest", "HTTP Request", 4.2,
        required_parameters=("url",),
        default_parameters={"method": "GET", "url": "https://example.com", "options": {}},
    ),
    NodeSpec(
        NodeCategory.FILE_STORE, "n8n-nodes-base.nextCloud", "Nextcloud", 1,
        required_parameters=("operation", "path"),
        default_parameters={"operation": "list", "path": "/"},
        credential_kind="nextcloud", credential_key="nextCloudApi",
    ),
    NodeSpec(
        NodeCategory.SLACK, "n8n-nodes-base.slack", "Slack", 2.2,
        required_parameters=("text",),
        default_parameters={"resource": "message", "operation": "post", "text": "{{ $json.text }}"},
        credential_kind="slack", credential_key="slackApi",
    ),
)


def slugify(name: str) -> str:
    """'Send Email' -> 'send-email'."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


@dataclass(frozen=True, eq=False)
class NodeCatalog:
    """
    Immutable lookup table of known node categories.

    Built once and passed explicitly to validators and the repair step;
    tests can hand in a substitute catalog instead of patching globals.
    """
    specs: Mapping[NodeCategory, NodeSpec]
    substring_rules: Tuple[Tuple[str, NodeCategory], ...] = SUBSTRING_RULES

    def __post_init__(self):
        object.__setattr__(self, "specs", MappingProxyType(dict(self.specs)))
        index: Dict[str, NodeCategory] = {}
        for spec in self.specs.values():
            for t in (spec.type_name,) + tuple(spec.extra_types):
                index[t] = spec.category
        object.__setattr__(self, "_type_index", MappingProxyType(index))

    # ---- ingestion boundary ----
    def classify(self, type_name: Any) -> NodeCategory:
        """
        Map an engine type string (or a category value) onto a NodeCategory.
        Exact catalog types first, then category values, then substring rules.
        """
        if not isinstance(type_name, str) or not type_name.strip():
            return NodeCategory.UNKNOWN
        type_name = type_name.strip()
        hit = self._type_index.get(type_name)
        if hit is not None:
            return hit
        try:
            return NodeCategory(type_name.lower())
        except ValueError:
            pass
        label = type_name.lower()
        for needle, category in self.substring_rules:
            if needle in label:
                return category
        return NodeCategory.UNKNOWN

    def category_of(self, node: Any) -> NodeCategory:
        if not isinstance(node, dict):
            return NodeCategory.UNKNOWN
        return self.classify(node.get("type"))

    def satisfies(self, nodes: Iterable[Any], requirement: str) -> bool:
        """
        True when some node fulfils `requirement` (a category value or an
        engine type). Known requirements match by category; unknown ones fall
        back to matching the type suffix, e.g. "vendor.fooBar" -> "fooBar".
        """
        nodes = [n for n in nodes if isinstance(n, dict)]
        wanted = self.classify(requirement)
        if wanted is not NodeCategory.UNKNOWN:
            return any(self.category_of(n) is wanted for n in nodes)
        suffix = str(requirement).split(".")[-1]
        return any(
            isinstance(n.get("type"), str) and (n["type"] == requirement or (suffix and suffix in n["type"]))
            for n in nodes
        )

    # ---- lookups ----
    def spec_for(self, category: NodeCategory) -> Optional[NodeSpec]:
        return self.specs.get(category)

    def credential_placeholder(self, category: NodeCategory) -> Optional[Dict[str, Dict[str, str]]]:
        spec = self.spec_for(category)
        return spec.credential_placeholder() if spec else None

    def output_channel(self, category: NodeCategory) -> str:
        spec = self.spec_for(category)
        return spec.output_channel if spec else MAIN

    def new_node(
        self,
        category: NodeCategory,
        name: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        position: Optional[Tuple[int, int]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Build a minimal node of `category` from its defaults, or None when the category has no spec."""
        spec = self.spec_for(category)
        if spec is None:
            return None
        name = name or spec.display_name
        node: Dict[str, Any] = {
            "id": slugify(name),
            "name": name,
            "type": spec.type_name,
            "typeVersion": spec.type_version,
            "position": list(position) if position else [250, 300],
            "parameters": {**copy.deepcopy(dict(spec.default_parameters)), **copy.deepcopy(dict(parameters or {}))},
        }
        placeholder = spec.credential_placeholder()
        if placeholder:
            node["credentials"] = placeholder
        return node

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> "NodeCatalog":
        """Return a new catalog with per-category fields replaced (keys are category values)."""
        specs = dict(self.specs)
        valid_fields = {f.name for f in dataclasses.fields(NodeSpec)} - {"category"}
        for key, fields in overrides.items():
            try:
                category = NodeCategory(key)
            except ValueError as e:
                raise ValueError(f"Unknown node category in catalog override: {key!r}") from e
            unknown = set(fields) - valid_fields
            if unknown:
                raise ValueError(f"Unknown NodeSpec field(s) for {key!r}: {sorted(unknown)}")
            values = dict(fields)
            for tuple_field in ("required_parameters", "extra_types"):
                if tuple_field in values:
                    values[tuple_field] = tuple(values[tuple_field])
            base = specs.get(category)
            if base is None:
                if "type_name" not in values or "display_name" not in values:
                    raise ValueError(f"New category {key!r} needs type_name and display_name")
                specs[category] = NodeSpec(category=category, **values)
            else:
                specs[category] = dataclasses.replace(base, **values)
        return NodeCatalog(specs=specs, substring_rules=self.substring_rules)


@lru_cache(maxsize=None)
def default_catalog() -> NodeCatalog:
    """The shared built-in catalog."""
    return NodeCatalog(specs={spec.category: spec for spec in _DEFAULT_SPECS})


def load_catalog(path: PathLike) -> NodeCatalog:
    """
    Build a catalog from a YAML or JSON override file merged over the defaults.

    Expected shape:
        categories:
          email-sender:
            type_version: 2.1
            required_parameters: [toEmail, subject]
    """
    data = load_any(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Catalog file {path} must contain a mapping")
    overrides = data.get("categories", data)
    if not isinstance(overrides, dict):
        raise ValueError(f"Catalog file {path}: 'categories' must be a mapping")
    return default_catalog().with_overrides(overrides)

# flowmend/executable/credentials.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional
import json

from flowmend.catalog.registry import NodeCatalog, default_catalog
from flowmend.report import SubReport
from flowmend.utils.graph import node_list, node_name
from flowmend.utils.logger import get_logger

logger = get_logger("credentials")


def validate_credentials(
    workflow: Dict[str, Any],
    required_kinds: Optional[Iterable[str]] = None,
    catalog: Optional[NodeCatalog] = None,
) -> SubReport:
    """
    Check credential references, never the secrets behind them.

    A node without credentials is only an error when its category needs a
    credential kind the caller listed in `required_kinds`.
    """
    report = SubReport("credentials")
    catalog = catalog or default_catalog()
    required = {str(k).lower() for k in (required_kinds or ())}

    for index, node in enumerate(node_list(workflow)):
        name = node_name(node) or f"Node {index + 1}"
        creds = node.get("credentials")

        if not isinstance(creds, dict) or not creds:
            spec = catalog.spec_for(catalog.category_of(node))
            if spec is not None and spec.credential_kind and spec.credential_kind in required:
                report.error(
                    f'{spec.display_name} node "{name}" missing {spec.credential_kind} credentials',
                    suggestion=f"Add credentials: {json.dumps(spec.credential_placeholder())}",
                    node=name,
                )
            continue

        for kind, value in creds.items():
            if isinstance(value, str):
                report.error(
                    f'Node "{name}": Credential "{kind}" is a string, must be an object',
                    suggestion=f'Change credential format to: {{"{kind}": {{"id": "{value}", "name": "..."}}}}',
                    node=name,
                )
            elif isinstance(value, dict):
                if not value.get("id") or not value.get("name"):
                    report.warning(f'Node "{name}": Credential "{kind}" should have id and name', node=name)
            else:
                report.error(
                    f'Node "{name}": Credential "{kind}" must be an object with id and name',
                    node=name,
                )

    logger.debug("credentials: %d error(s), %d warning(s)", len(report.errors), len(report.warnings))
    return report

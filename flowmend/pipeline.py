# flowmend/pipeline.py
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flowmend.catalog.registry import NodeCatalog, default_catalog
from flowmend.executable.credentials import validate_credentials
from flowmend.executable.parameters import validate_parameters
from flowmend.repair.autofix import auto_fix
from flowmend.report import ValidationReport
from flowmend.semantic.business import IntentLike, validate_business_logic
from flowmend.semantic.intent import IntentAnalysis
from flowmend.structural.checker import validate_structure
from flowmend.structural.connections import validate_connections
from flowmend.utils.logger import get_logger

logger = get_logger("pipeline")


def validate_complete(
    workflow: Dict[str, Any],
    intent: IntentLike = None,
    catalog: Optional[NodeCatalog] = None,
) -> ValidationReport:
    """
    Run the five validation phases and aggregate their findings.

    Phases are independent: a structural failure does not stop the others,
    so one report lists everything that is wrong with the document.
    """
    catalog = catalog or default_catalog()
    intent = IntentAnalysis.from_dict(intent)
    required_kinds = intent.required_credential_kinds if intent is not None else ()

    report = ValidationReport(
        structure=validate_structure(workflow),
        business_logic=validate_business_logic(workflow, intent, catalog),
        parameters=validate_parameters(workflow, catalog),
        connections=validate_connections(workflow, catalog),
        credentials=validate_credentials(workflow, required_kinds, catalog),
    )
    logger.info("validation: valid=%s, %d error(s), %d warning(s)",
                report.valid, len(report.errors), len(report.warnings))
    return report


def validate_and_fix(
    workflow: Dict[str, Any],
    intent: IntentLike = None,
    catalog: Optional[NodeCatalog] = None,
    reflow_positions: bool = False,
) -> Tuple[Dict[str, Any], ValidationReport, ValidationReport]:
    """Validate, repair, validate again. Returns (fixed, before, after)."""
    catalog = catalog or default_catalog()
    intent = IntentAnalysis.from_dict(intent)

    before = validate_complete(workflow, intent, catalog)
    fixed = auto_fix(workflow, before, intent, catalog, reflow_positions=reflow_positions)
    after = validate_complete(fixed, intent, catalog)
    logger.info("auto-fix: errors %d -> %d", len(before.errors), len(after.errors))
    return fixed, before, after

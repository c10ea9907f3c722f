#!/usr/bin/env python3
# flowmend/cli.py

from pathlib import Path
from typing import Any, Dict, Optional

import typer

from flowmend.catalog.registry import NodeCatalog, default_catalog, load_catalog
from flowmend.pipeline import validate_and_fix, validate_complete
from flowmend.report import ValidationReport
from flowmend.semantic.intent import IntentAnalysis
from flowmend.utils.io import WorkflowDecodeError, load_any, load_workflow, write_json
from flowmend.utils.logger import init_logger, parse_level

app = typer.Typer(help="FlowMend CLI - Validate and repair generated (n8n) workflows")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, ...)"),
):
    level = parse_level(log_level)
    if log_level and level is None:
        raise typer.BadParameter(f"Unknown log level '{log_level}'")
    init_logger(level=level)


def _read_workflow(path: Path) -> Dict[str, Any]:
    try:
        wf, repairs = load_workflow(path)
    except WorkflowDecodeError as e:
        raise typer.BadParameter(f"{path}: {e}")
    if repairs:
        print(f"[warn] {path}: repaired JSON text ({', '.join(repairs)})")
    return wf


def _read_intent(path: Optional[Path]) -> Optional[IntentAnalysis]:
    if path is None:
        return None
    try:
        raw = load_any(path)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    if not isinstance(raw, dict):
        raise typer.BadParameter(f"Intent file {path} must contain an object")
    return IntentAnalysis.from_dict(raw)


def _read_catalog(path: Optional[Path]) -> NodeCatalog:
    if path is None:
        return default_catalog()
    try:
        return load_catalog(path)
    except (ValueError, TypeError) as e:
        raise typer.BadParameter(f"Invalid catalog {path}: {e}")


def _print_report(report: ValidationReport, verbose: bool = False) -> None:
    print(f"Valid:    {report.valid}")
    print(f"Errors:   {len(report.errors)}")
    print(f"Warnings: {len(report.warnings)}")

    if report.errors:
        print("Errors:")
        for it in report.errors:
            print(f"- {it}")
    if report.warnings:
        print("Warnings:")
        for it in report.warnings:
            print(f"- {it}")
    if report.suggestions:
        print("Suggestions:")
        for it in report.suggestions:
            print(f"- {it}")

    if verbose:
        for phase in report.phases:
            print(f"[debug] {phase.phase}: valid={phase.valid} "
                  f"errors={len(phase.errors)} warnings={len(phase.warnings)}")


@app.command()
def validate(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
    intent: Optional[Path] = typer.Option(None, "--intent", exists=True, readable=True,
                                          help="Intent analysis (JSON or YAML)"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", exists=True, readable=True,
                                           help="Node catalog overrides (YAML or JSON)"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON report to this path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show per-phase detail"),
):
    """
    Validate a workflow in all five phases. Exits with code 1 when invalid.
    """
    wf = _read_workflow(input)
    result = validate_complete(wf, _read_intent(intent), _read_catalog(catalog))

    _print_report(result, verbose=verbose)

    if report is not None:
        payload = {"input": str(input), **result.to_dict()}
        write_json(report, payload)
        print(f"[ok] wrote report to {report}")

    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def fix(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
    output: Path = typer.Option(..., "--output", "-o", help="Where to write the repaired workflow"),
    intent: Optional[Path] = typer.Option(None, "--intent", exists=True, readable=True,
                                          help="Intent analysis (JSON or YAML)"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", exists=True, readable=True,
                                           help="Node catalog overrides (YAML or JSON)"),
    reflow_positions: bool = typer.Option(False, "--reflow-positions",
                                          help="Lay out every node left to right again"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print the remaining findings"),
):
    """
    Repair a workflow and write the result. Prints error counts before and after.
    """
    wf = _read_workflow(input)
    fixed, before, after = validate_and_fix(
        wf, _read_intent(intent), _read_catalog(catalog), reflow_positions=reflow_positions
    )
    write_json(output, fixed)

    print(f"Errors before:   {len(before.errors)}")
    print(f"Errors after:    {len(after.errors)}")
    print(f"Warnings after:  {len(after.warnings)}")
    print(f"[ok] wrote {output}")

    if verbose:
        _print_report(after, verbose=True)


@app.command()
def batch(
    glob: str = typer.Option("workflows/*.json", "--glob", help="Glob for workflow JSON files"),
    out: Path = typer.Option(Path("results/summary.csv"), "--out", help="CSV path to write results"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", exists=True, readable=True,
                                           help="Node catalog overrides (YAML or JSON)"),
    fix: bool = typer.Option(False, "--fix", help="Also count errors left after auto-fix"),
):
    """
    Batch validate workflows and export a CSV summary.

    An `intent.json` next to a workflow file is used as its intent analysis.
    """
    import glob as _glob
    import pandas as pd

    cat = _read_catalog(catalog)
    rows = []
    for fp_str in sorted(_glob.glob(glob)):
        fp = Path(fp_str)
        if fp.name == "intent.json":
            continue
        try:
            wf, repairs = load_workflow(fp)
        except WorkflowDecodeError as e:
            print(f"[skip] {fp}: {e}")
            continue

        # Skip non-workflow JSON (like expect.json)
        if "nodes" not in wf:
            print(f"[skip] {fp} does not look like a workflow JSON (missing 'nodes'); skipping")
            continue

        intent_path = fp.with_name("intent.json")
        intent = IntentAnalysis.from_dict(load_any(intent_path)) if intent_path.exists() else None

        report = validate_complete(wf, intent, cat)
        row = {
            "file": str(fp),
            "valid": report.valid,
            "errors": len(report.errors),
            "warnings": len(report.warnings),
            "textRepairs": len(repairs),
        }
        for phase in report.phases:
            row[f"{phase.phase}Errors"] = len(phase.errors)
        if fix:
            _, _, after = validate_and_fix(wf, intent, cat)
            row["errorsAfterFix"] = len(after.errors)
            row["validAfterFix"] = after.valid
        rows.append(row)

    out.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows).to_csv(out, index=False)
    print(f"[ok] wrote {out} ({len(rows)} workflow(s))")


if __name__ == "__main__":
    app()

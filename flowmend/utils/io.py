# flowmend/utils/io.py
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import yaml

from flowmend.utils.logger import get_logger

logger = get_logger("io")

# -------- Path helpers --------
PathLike = Union[str, Path]


class WorkflowDecodeError(ValueError):
    """Raised when workflow text cannot be turned into a JSON object, even after repair."""

    def __init__(self, message: str, repairs: List[str] | None = None):
        super().__init__(message)
        self.repairs = repairs or []


def to_path(p: PathLike) -> Path:
    """Convert string-like to pathlib.Path."""
    return p if isinstance(p, Path) else Path(p)


def ensure_parent(path: PathLike) -> Path:
    """Ensure parent directory exists for a file path."""
    p = to_path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


# -------- Text / JSON / YAML --------
def read_text(path: PathLike, encoding: str = "utf-8") -> str:
    return to_path(path).read_text(encoding=encoding)


def read_json(path: PathLike) -> Any:
    """Load JSON file with UTF-8."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: PathLike, data: Any, indent: int = 2) -> Path:
    """Write JSON atomically, pretty-formatted."""
    p = ensure_parent(path)
    tmp = p.with_suffix(p.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=indent)
    tmp.replace(p)
    return p


def read_yaml(path: PathLike) -> Any:
    with to_path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_any(path: PathLike) -> Any:
    """
    Load data by extension:
      - .json -> JSON
      - .yaml/.yml -> YAML
    """
    p = to_path(path)
    suf = p.suffix.lower()
    if suf == ".json":
        return read_json(p)
    if suf in (".yaml", ".yml"):
        return read_yaml(p)
    raise ValueError(f"Unsupported extension: {suf} for {p}")


# -------- Lenient workflow parsing --------
_FENCE_RE = re.compile(r"```(?:json)?\s*\n?")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_DOUBLE_COMMA_RE = re.compile(r",(\s*,)+")
_EMPTY_VALUE_RE = re.compile(r":\s*(?=[,}\]])")
_LEADING_COMMA_RE = re.compile(r"\[\s*,")


def repair_json_text(text: str) -> Tuple[str, List[str]]:
    """
    Best-effort cleanup of JSON emitted by a generator.

    Handles markdown code fences, prose around the object, doubled and
    trailing commas, and keys whose value was left empty (`"a": ,`).
    Returns the repaired text and the list of repairs applied.
    """
    repaired = text
    repairs: List[str] = []

    if "```" in repaired:
        repaired = _FENCE_RE.sub("", repaired)
        repairs.append("removed markdown fences")

    first, last = repaired.find("{"), repaired.rfind("}")
    if first != -1 and last > first and (first > 0 or last < len(repaired) - 1):
        if repaired[:first].strip() or repaired[last + 1:].strip():
            repairs.append("removed text around the JSON object")
        repaired = repaired[first:last + 1]

    for pattern, replacement, label in (
        (_DOUBLE_COMMA_RE, ",", "collapsed doubled commas"),
        (_LEADING_COMMA_RE, "[", "removed leading commas in arrays"),
        (_TRAILING_COMMA_RE, r"\1", "removed trailing commas"),
        (_EMPTY_VALUE_RE, ": null", "filled empty values with null"),
    ):
        updated = pattern.sub(replacement, repaired)
        if updated != repaired:
            repairs.append(label)
            repaired = updated

    return repaired, repairs


def parse_workflow_text(text: str) -> Tuple[Dict[str, Any], List[str]]:
    """
    Parse workflow JSON, repairing it when the raw text does not decode.

    Returns (workflow, repairs). Raises WorkflowDecodeError when the text is
    still not a JSON object after repair.
    """
    repairs: List[str] = []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        repaired, repairs = repair_json_text(text)
        logger.info("workflow JSON did not parse, applied repairs: %s", ", ".join(repairs) or "none")
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as e:
            raise WorkflowDecodeError(f"Invalid workflow JSON: {e.msg} (line {e.lineno})", repairs) from e

    if not isinstance(data, dict):
        raise WorkflowDecodeError(
            f"Workflow JSON must be an object, got {type(data).__name__}", repairs
        )
    return data, repairs


def load_workflow(path: PathLike) -> Tuple[Dict[str, Any], List[str]]:
    """Read a workflow file and parse it leniently."""
    return parse_workflow_text(read_text(path))

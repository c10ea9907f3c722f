# flowmend/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Finding:
    """One defect, with the fix proposed for it (if any)."""
    severity: Severity
    message: str
    suggestion: Optional[str] = None
    node: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"severity": self.severity.value, "message": self.message}
        if self.suggestion:
            out["suggestion"] = self.suggestion
        if self.node:
            out["node"] = self.node
        return out


@dataclass
class SubReport:
    """Findings of a single validation phase, in the order they were raised."""
    phase: str
    findings: List[Finding] = field(default_factory=list)

    def error(self, message: str, suggestion: Optional[str] = None, node: Optional[str] = None) -> None:
        self.findings.append(Finding(Severity.ERROR, message, suggestion, node))

    def warning(self, message: str, suggestion: Optional[str] = None, node: Optional[str] = None) -> None:
        self.findings.append(Finding(Severity.WARNING, message, suggestion, node))

    @property
    def errors(self) -> List[str]:
        return [f.message for f in self.findings if f.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[str]:
        return [f.message for f in self.findings if f.severity is Severity.WARNING]

    @property
    def suggestions(self) -> List[str]:
        return [f.suggestion for f in self.findings if f.suggestion]

    @property
    def valid(self) -> bool:
        return not any(f.severity is Severity.ERROR for f in self.findings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class ValidationReport:
    structure: SubReport
    business_logic: SubReport
    parameters: SubReport
    connections: SubReport
    credentials: SubReport

    @property
    def phases(self) -> List[SubReport]:
        return [self.structure, self.business_logic, self.parameters, self.connections, self.credentials]

    @property
    def findings(self) -> List[Finding]:
        return [f for phase in self.phases for f in phase.findings]

    @property
    def errors(self) -> List[str]:
        return [e for phase in self.phases for e in phase.errors]

    @property
    def warnings(self) -> List[str]:
        return [w for phase in self.phases for w in phase.warnings]

    @property
    def suggestions(self) -> List[str]:
        return [s for phase in self.phases for s in phase.suggestions]

    @property
    def valid(self) -> bool:
        return all(phase.valid for phase in self.phases)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase payload handed back to the surrounding application."""
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "structure": self.structure.to_dict(),
            "businessLogic": self.business_logic.to_dict(),
            "parameters": self.parameters.to_dict(),
            "connections": self.connections.to_dict(),
            "credentials": self.credentials.to_dict(),
        }

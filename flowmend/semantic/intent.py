# flowmend/semantic/intent.py
# Read-only description of what a workflow is supposed to do, as produced by
# the upstream request analyzer. Accepts both current and legacy field names.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from flowmend.catalog.registry import DEFAULT_CRON


class WorkflowKind(str, Enum):
    MAIL_AUTOMATION = "mail-automation"
    MAIL_SUMMARY = "mail-summary"
    SCHEDULED_DIGEST = "scheduled-digest"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Any) -> Optional["WorkflowKind"]:
        if raw is None:
            return None
        if isinstance(raw, WorkflowKind):
            return raw
        key = str(raw).strip().lower()
        if not key:
            return None
        key = _KIND_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.OTHER

    @property
    def is_mail(self) -> bool:
        return self in (WorkflowKind.MAIL_AUTOMATION, WorkflowKind.MAIL_SUMMARY)


_KIND_ALIASES = {
    "email-automation": "mail-automation",
    "email-summary": "mail-summary",
    "newsletter": "scheduled-digest",
    "digest": "scheduled-digest",
}


# Matches: 9, 9am, 9 am, 09:00, 9:00, 9.00, 09h00, 7:30pm
TIME_REGEX = re.compile(
    r"^\s*([01]?\d|2[0-3])\s*(?:[:h.]\s*([0-5]\d))?\s*(am|pm)?\s*$",
    flags=re.IGNORECASE,
)


def _coerce_bool(v: Any) -> bool:
    """Best-effort conversion to bool."""
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v != 0
    if isinstance(v, str):
        t = v.strip().lower()
        if t in {"true", "yes", "y", "1"}:
            return True
        if t in {"false", "no", "n", "0"}:
            return False
    # default: False (conservative)
    return False


def _as_tuple(v: Any) -> Tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, str):
        return (v,)
    if isinstance(v, Iterable):
        return tuple(str(x) for x in v if x is not None and str(x).strip())
    return ()


def cron_from_time(time: Optional[str], default: str = DEFAULT_CRON) -> str:
    """
    Daily cron expression for a clock time: "08:30" -> "30 8 * * *".
    Unparseable or missing times give `default`.
    """
    if not time:
        return default
    m = TIME_REGEX.match(str(time))
    if not m:
        return default
    hour = int(m.group(1))
    minute = int(m.group(2) or 0)
    meridiem = (m.group(3) or "").lower()
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23:
        return default
    return f"{minute} {hour} * * *"


@dataclass(frozen=True)
class AIRequirements:
    needs_ai: bool = False
    needs_tools: bool = False
    needs_memory: bool = False


@dataclass(frozen=True)
class IntentAnalysis:
    """Container for the upstream analysis of a workflow request."""
    required_node_categories: Tuple[str, ...] = ()
    workflow_kind: Optional[WorkflowKind] = None
    ai_requirements: AIRequirements = field(default_factory=AIRequirements)
    schedule_time: Optional[str] = None
    required_credential_kinds: Tuple[str, ...] = ()
    triggers: Tuple[str, ...] = ()

    @property
    def hints_schedule(self) -> bool:
        return (
            self.schedule_time is not None
            or any("schedule" in t.lower() or "cron" in t.lower() for t in self.triggers)
        )

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["IntentAnalysis"]:
        """
        Build from the analyzer's JSON payload.

        Recognized keys (legacy names in parentheses):
          requiredNodeCategories (requiredNodes), workflowKind (workflowType),
          aiRequirements {needsAI, needsTools, needsMemory}, scheduling {time},
          requiredCredentialKinds (credentials), triggers.
        """
        if raw is None:
            return None
        if isinstance(raw, IntentAnalysis):
            return raw
        if not isinstance(raw, dict):
            return None

        ai_raw = raw.get("aiRequirements") or {}
        if not isinstance(ai_raw, dict):
            ai_raw = {}
        scheduling = raw.get("scheduling") or {}
        time = scheduling.get("time") if isinstance(scheduling, dict) else None

        return cls(
            required_node_categories=_as_tuple(raw.get("requiredNodeCategories", raw.get("requiredNodes"))),
            workflow_kind=WorkflowKind.parse(raw.get("workflowKind", raw.get("workflowType"))),
            ai_requirements=AIRequirements(
                needs_ai=_coerce_bool(ai_raw.get("needsAI")),
                needs_tools=_coerce_bool(ai_raw.get("needsTools")),
                needs_memory=_coerce_bool(ai_raw.get("needsMemory")),
            ),
            schedule_time=str(time) if time else None,
            required_credential_kinds=tuple(
                k.lower() for k in _as_tuple(raw.get("requiredCredentialKinds", raw.get("credentials")))
            ),
            triggers=_as_tuple(raw.get("triggers")),
        )

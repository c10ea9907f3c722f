# flowmend/catalog/categories.py
from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Tuple


# Connection channels (keys under connections[src] and the edge "type" label)
MAIN = "main"
AI_LANGUAGE_MODEL = "ai_languageModel"
AI_TOOL = "ai_tool"
AI_MEMORY = "ai_memory"

# Label emitted by older generators for the data channel; the engine rejects it.
LEGACY_NEXT = "next"

# Legacy / misspelled channel labels and the channel they stand for.
CHANNEL_ALIASES = {
    "next": MAIN,
    "output": MAIN,
    "ai_language_model": AI_LANGUAGE_MODEL,
    "ai_model": AI_LANGUAGE_MODEL,
    "language_model": AI_LANGUAGE_MODEL,
    "ai_tools": AI_TOOL,
    "tools": AI_TOOL,
    "ai_mem": AI_MEMORY,
    "memory": AI_MEMORY,
}


def normalize_channel(label: str) -> str:
    """Map a legacy channel label onto the channel the engine expects."""
    return CHANNEL_ALIASES.get(label.lower(), label) if isinstance(label, str) else label


class NodeCategory(str, Enum):
    WEBHOOK_TRIGGER = "webhook-trigger"
    SCHEDULE_TRIGGER = "schedule-trigger"
    MANUAL_TRIGGER = "manual-trigger"
    GENERIC_TRIGGER = "generic-trigger"
    MAIL_READER = "mail-reader"
    FEED_READER = "feed-reader"
    AGGREGATOR = "aggregator"
    CODE_TRANSFORM = "code-transform"
    AGENT = "agent"
    LANGUAGE_MODEL = "language-model"
    CALCULATOR_TOOL = "calculator-tool"
    MEMORY_BUFFER = "memory-buffer"
    EMAIL_SENDER = "email-sender"
    HTTP_REQUEST = "http-request"
    FILE_STORE = "file-store"
    SLACK = "slack"
    UNKNOWN = "unknown"

    @property
    def is_trigger(self) -> bool:
        return self in TRIGGER_CATEGORIES

    @property
    def starts_workflow(self) -> bool:
        """Triggers, plus the mail reader which polls its mailbox on its own."""
        return self in ENTRY_CATEGORIES

    @property
    def is_ai_subnode(self) -> bool:
        return self in AI_SUBNODE_CATEGORIES


TRIGGER_CATEGORIES: FrozenSet[NodeCategory] = frozenset({
    NodeCategory.WEBHOOK_TRIGGER,
    NodeCategory.SCHEDULE_TRIGGER,
    NodeCategory.MANUAL_TRIGGER,
    NodeCategory.GENERIC_TRIGGER,
})

ENTRY_CATEGORIES: FrozenSet[NodeCategory] = TRIGGER_CATEGORIES | {NodeCategory.MAIL_READER}

AI_SUBNODE_CATEGORIES: FrozenSet[NodeCategory] = frozenset({
    NodeCategory.LANGUAGE_MODEL,
    NodeCategory.CALCULATOR_TOOL,
    NodeCategory.MEMORY_BUFFER,
})

# The three entry points offered to users when a workflow has none.
CANONICAL_TRIGGER_LABELS = ("Webhook Trigger", "Schedule Trigger", "IMAP Email Read")


# Ordered substring rules applied to the lowercased engine type when the exact
# type is not in the catalog. First match wins, so specific patterns come first.
SUBSTRING_RULES: Tuple[Tuple[str, NodeCategory], ...] = (
    ("lmchat", NodeCategory.LANGUAGE_MODEL),
    ("languagemodel", NodeCategory.LANGUAGE_MODEL),
    ("toolcalculator", NodeCategory.CALCULATOR_TOOL),
    ("memory", NodeCategory.MEMORY_BUFFER),
    ("agent", NodeCategory.AGENT),
    ("emailreadimap", NodeCategory.MAIL_READER),
    ("emailtrigger", NodeCategory.MAIL_READER),
    ("imap", NodeCategory.MAIL_READER),
    ("emailsend", NodeCategory.EMAIL_SENDER),
    ("smtp", NodeCategory.EMAIL_SENDER),
    ("rss", NodeCategory.FEED_READER),
    ("aggregate", NodeCategory.AGGREGATOR),
    ("webhook", NodeCategory.WEBHOOK_TRIGGER),
    ("schedule", NodeCategory.SCHEDULE_TRIGGER),
    ("cron", NodeCategory.SCHEDULE_TRIGGER),
    ("manualtrigger", NodeCategory.MANUAL_TRIGGER),
    ("trigger", NodeCategory.GENERIC_TRIGGER),
    ("httprequest", NodeCategory.HTTP_REQUEST),
    ("slack", NodeCategory.SLACK),
    ("nextcloud", NodeCategory.FILE_STORE),
    ("readwritefile", NodeCategory.FILE_STORE),
    ("code", NodeCategory.CODE_TRANSFORM),
    ("function", NodeCategory.CODE_TRANSFORM),
)


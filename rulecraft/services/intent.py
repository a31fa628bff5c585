"""Keyword-based classification of a user message into a rule type.

Pure and synchronous; used by the UI to preselect the kind of rule before
asking the model.
"""

from __future__ import annotations

import re

from rulecraft.schemas.events import RuleType
from rulecraft.schemas.session import IntentResult

_KEYWORDS: dict[RuleType, tuple[str, ...]] = {
    RuleType.PROJECT_RULE: (
        "project",
        "codebase",
        "repository",
        "repo",
        "convention",
        "architecture",
        "framework",
        "component",
        "best practice",
        "guideline",
    ),
    RuleType.COMMAND: (
        "command",
        "slash command",
        "shortcut",
        "workflow",
        "automate",
        "script",
        "run",
    ),
    RuleType.USER_RULE: (
        "i prefer",
        "my preference",
        "my style",
        "personal",
        "for me",
        "always answer",
        "always respond",
        "every project",
        "global",
    ),
}

BASE_CONFIDENCE = 0.5
CONFIDENCE_STEP = 0.15
MAX_CONFIDENCE = 0.95

_WHITESPACE = re.compile(r"\s+")

# Whole-word matching: "description" must not hit "script"
_PATTERNS: dict[RuleType, list[tuple[str, re.Pattern[str]]]] = {
    rule_type: [(k, re.compile(rf"\b{re.escape(k)}\b")) for k in keywords]
    for rule_type, keywords in _KEYWORDS.items()
}


def detect_intent(message: str) -> IntentResult:
    """Classify a message as PROJECT_RULE, COMMAND or USER_RULE.

    The rule type with the most keyword hits wins. Ties go to the type listed
    first in _KEYWORDS, and messages without hits fall back to PROJECT_RULE.
    Confidence grows with the number of hits.
    """
    text = _WHITESPACE.sub(" ", message.lower()).strip()

    best_type = RuleType.PROJECT_RULE
    best_hits: list[str] = []
    for rule_type, patterns in _PATTERNS.items():
        hits = [k for k, pattern in patterns if pattern.search(text)]
        if len(hits) > len(best_hits):
            best_type, best_hits = rule_type, hits

    if not best_hits:
        return IntentResult(rule_type=RuleType.PROJECT_RULE, confidence=BASE_CONFIDENCE)

    confidence = min(BASE_CONFIDENCE + CONFIDENCE_STEP * len(best_hits), MAX_CONFIDENCE)
    return IntentResult(
        rule_type=best_type,
        confidence=round(confidence, 2),
        matched_keywords=best_hits,
    )

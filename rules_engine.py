"""
Priority-ordered text rules assigning a category to a transaction.

Rules are plain objects exposing ``condition``, ``condition_value``,
``category``, ``priority`` and ``bank_type`` (the ORM ``Rule`` works as is).
Plain conditions look at the combined classification text (merchant, subject
and body); the ``merchant*`` variants look at the merchant alone.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence


UNCATEGORIZED = "Uncategorized"

_MATCHERS: dict[str, Callable[[str, str], bool]] = {
    "contains": lambda text, needle: needle in text,
    "startsWith": lambda text, needle: text.startswith(needle),
    "endsWith": lambda text, needle: text.endswith(needle),
    "equals": lambda text, needle: text == needle,
}

_MERCHANT_CONDITIONS = {
    "merchantContains": "contains",
    "merchantStartsWith": "startsWith",
    "merchantEndsWith": "endsWith",
    "merchantEquals": "equals",
}


def _condition_name(condition) -> str:
    return getattr(condition, "value", condition) or ""


def match_rule(text: str, rule, merchant: Optional[str] = None) -> bool:
    condition = _condition_name(rule.condition)
    if condition in _MERCHANT_CONDITIONS:
        if merchant is None:
            return False
        subject = merchant
        condition = _MERCHANT_CONDITIONS[condition]
    else:
        subject = text

    matcher = _MATCHERS.get(condition)
    if matcher is None:
        return False
    return matcher(subject.lower(), (rule.condition_value or "").lower())


def applies_to_bank_type(rule, bank_type) -> bool:
    return not rule.bank_type or rule.bank_type == bank_type


def apply_rules(
    text: str,
    rules: Sequence,
    bank_type=None,
    merchant: Optional[str] = None,
) -> str:
    """
    Category of the highest-priority matching rule, else ``"Uncategorized"``.

    Rules with equal priority keep their input order, so the outcome between
    them depends on how the caller ordered the list.
    """
    if not rules:
        return UNCATEGORIZED

    applicable = [rule for rule in rules if applies_to_bank_type(rule, bank_type)]
    for rule in sorted(applicable, key=lambda r: r.priority, reverse=True):
        if match_rule(text, rule, merchant):
            return rule.category

    return UNCATEGORIZED


def classification_text(merchant: str, subject: str, content: str) -> str:
    return f"{merchant} {subject} {content}"

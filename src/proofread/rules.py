from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Mapping

DEFAULT_RULE_ORDER = 1000


class RuleValidationError(ValueError):
    """Raised when a replacement rule pattern is empty or does not compile."""


@dataclass
class ReplacementRule:
    pattern: str
    replacement: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_regex: bool = False
    enabled: bool = True
    case_sensitive: bool = True
    order: float = DEFAULT_RULE_ORDER
    single_instance: bool = False
    section_href: str | None = None
    occurrence_index: int | None = None
    is_global: bool = False

    def as_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "pattern": self.pattern,
            "replacement": self.replacement,
            "isRegex": self.is_regex,
            "enabled": self.enabled,
            "caseSensitive": self.case_sensitive,
            "order": self.order,
            "singleInstance": self.single_instance,
            "global": self.is_global,
        }
        if self.section_href is not None:
            payload["sectionHref"] = self.section_href
        if self.occurrence_index is not None:
            payload["occurrenceIndex"] = self.occurrence_index
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> "ReplacementRule | None":
        if not isinstance(payload, Mapping):
            return None
        rule_id = payload.get("id")
        pattern = payload.get("pattern")
        if not isinstance(rule_id, str) or not rule_id:
            return None
        if not isinstance(pattern, str):
            return None
        replacement = payload.get("replacement")
        if not isinstance(replacement, str):
            replacement = ""
        order = payload.get("order")
        if isinstance(order, bool) or not isinstance(order, (int, float)):
            order = DEFAULT_RULE_ORDER
        section_href = payload.get("sectionHref")
        if not isinstance(section_href, str) or not section_href:
            section_href = None
        occurrence_index = payload.get("occurrenceIndex")
        if isinstance(occurrence_index, bool) or not isinstance(occurrence_index, int):
            occurrence_index = None
        return cls(
            id=rule_id,
            pattern=pattern,
            replacement=replacement,
            is_regex=payload.get("isRegex") is True,
            enabled=payload.get("enabled") is not False,
            case_sensitive=payload.get("caseSensitive") is not False,
            order=order,
            single_instance=payload.get("singleInstance") is True,
            section_href=section_href,
            occurrence_index=occurrence_index,
            is_global=payload.get("global") is True,
        )


@dataclass
class PatternValidation:
    valid: bool
    error: str | None = None


def validate_pattern(pattern: str, is_regex: bool) -> PatternValidation:
    if not pattern or not pattern.strip():
        return PatternValidation(False, "Pattern cannot be empty")
    if is_regex:
        from .patterns import compile_pattern, normalize_pattern  # patterns imports this module.

        # Compile the anchored form that transforms use, not the raw source.
        try:
            compile_pattern(normalize_pattern(pattern, is_regex))
        except (re.error, ValueError) as exc:
            return PatternValidation(False, f"Invalid regex pattern: {exc}")
    return PatternValidation(True)


def create_rule(
    pattern: str,
    replacement: str,
    *,
    is_regex: bool = False,
    enabled: bool = True,
    case_sensitive: bool = True,
    order: float = DEFAULT_RULE_ORDER,
    single_instance: bool = False,
    section_href: str | None = None,
    occurrence_index: int | None = None,
    is_global: bool = False,
) -> ReplacementRule:
    """Build a new rule with a fresh id after validating its pattern.

    Raises :class:`RuleValidationError` for empty patterns and for regular
    expressions that do not compile, so invalid rules never reach a store.
    """
    validation = validate_pattern(pattern, is_regex)
    if not validation.valid:
        raise RuleValidationError(validation.error or "Invalid pattern")
    if occurrence_index is not None and occurrence_index < 0:
        raise RuleValidationError("Occurrence index must be zero or greater")
    return ReplacementRule(
        pattern=pattern,
        replacement=replacement,
        is_regex=is_regex,
        enabled=enabled,
        case_sensitive=case_sensitive,
        order=order,
        single_instance=single_instance,
        section_href=section_href,
        occurrence_index=occurrence_index,
        is_global=is_global,
    )


def _order_key(rule: ReplacementRule) -> float:
    return rule.order if isinstance(rule.order, (int, float)) else 0


def merge_rules(
    global_rules: Iterable[ReplacementRule] | None,
    book_rules: Iterable[ReplacementRule] | None,
) -> list[ReplacementRule]:
    merged: dict[str, ReplacementRule] = {}
    for rule in global_rules or ():
        merged[rule.id] = rule
    # Book entries replace library entries sharing an id.
    for rule in book_rules or ():
        merged[rule.id] = rule
    return sorted(merged.values(), key=_order_key)


def select_application_order(rules: Iterable[ReplacementRule]) -> list[ReplacementRule]:
    single: list[ReplacementRule] = []
    book: list[ReplacementRule] = []
    library: list[ReplacementRule] = []
    for rule in rules:
        if rule.single_instance:
            single.append(rule)
        elif rule.is_global:
            library.append(rule)
        else:
            book.append(rule)
    return single + book + library


def section_base(href: str | None) -> str | None:
    if href is None:
        return None
    return href.split("#", 1)[0]


def rule_applies_to_section(rule: ReplacementRule, section_href: str | None) -> bool:
    if not rule.section_href:
        return True
    return section_base(rule.section_href) == section_base(section_href)


__all__ = [
    "DEFAULT_RULE_ORDER",
    "PatternValidation",
    "ReplacementRule",
    "RuleValidationError",
    "create_rule",
    "merge_rules",
    "rule_applies_to_section",
    "section_base",
    "select_application_order",
    "validate_pattern",
]

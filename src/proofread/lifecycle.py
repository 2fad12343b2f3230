from __future__ import annotations

from dataclasses import fields, replace
from enum import Enum
from typing import Any

from .logging_utils import _debug_log
from .rules import (
    ReplacementRule,
    RuleValidationError,
    create_rule,
    merge_rules,
    validate_pattern,
)
from .store import RuleStore


class RuleScope(str, Enum):
    SINGLE = "single"
    BOOK = "book"
    GLOBAL = "global"


class RuleNotFoundError(LookupError):
    """Raised when a rule id is not present in the addressed scope."""


_RULE_FIELDS = {f.name for f in fields(ReplacementRule)}


def _coerce_scope(scope: RuleScope | str) -> RuleScope:
    try:
        return RuleScope(scope)
    except ValueError as exc:
        raise ValueError(f"Unknown rule scope: {scope!r}") from exc


def _merge_by_pattern(existing: list[ReplacementRule], rule: ReplacementRule) -> ReplacementRule:
    # Occurrence-targeted fixes are never deduplicated: offsets shift after each edit.
    if not rule.single_instance:
        for current in existing:
            if (
                not current.single_instance
                and current.pattern == rule.pattern
                and current.is_regex == rule.is_regex
            ):
                current.replacement = rule.replacement
                current.enabled = rule.enabled
                current.order = rule.order
                return current
    existing.append(rule)
    return rule


def get_merged_rules(store: RuleStore, book_key: str) -> list[ReplacementRule]:
    return merge_rules(store.get_global_rules(), store.get_book_rules(book_key))


def add_rule(
    store: RuleStore,
    book_key: str,
    rule: ReplacementRule | dict[str, Any],
    scope: RuleScope | str,
) -> ReplacementRule:
    """Persist a rule into the collection owned by ``scope``.

    ``rule`` may be a ready :class:`ReplacementRule` or keyword options for
    :func:`create_rule`. Returns the stored rule, which is the pre-existing
    entry when a non-single-instance rule was merged by pattern.
    """
    scope = _coerce_scope(scope)
    if isinstance(rule, dict):
        options = dict(rule)
        if scope is RuleScope.SINGLE:
            options["single_instance"] = True
        options["is_global"] = scope is RuleScope.GLOBAL
        rule = create_rule(**options)
    else:
        validation = validate_pattern(rule.pattern, rule.is_regex)
        if not validation.valid:
            raise RuleValidationError(validation.error or "Invalid pattern")
        # The collection a rule lands in decides its bucket, so the flags must agree.
        rule = replace(
            rule,
            is_global=scope is RuleScope.GLOBAL,
            single_instance=rule.single_instance or scope is RuleScope.SINGLE,
        )

    if scope is RuleScope.GLOBAL:
        rules = store.get_global_rules()
        stored = _merge_by_pattern(rules, rule)
        store.save_global_rules(rules)
    else:
        rules = store.get_book_rules(book_key)
        stored = _merge_by_pattern(rules, rule)
        store.save_book_rules(book_key, rules)
    _debug_log(f"stored rule {stored.id} in {scope.value} scope for {book_key!r}")
    return stored


def remove_rule(store: RuleStore, book_key: str, rule_id: str, scope: RuleScope | str) -> None:
    scope = _coerce_scope(scope)
    if scope is RuleScope.GLOBAL:
        rules = store.get_global_rules()
        store.save_global_rules([r for r in rules if r.id != rule_id])
    else:
        rules = store.get_book_rules(book_key)
        store.save_book_rules(book_key, [r for r in rules if r.id != rule_id])


def update_rule(
    store: RuleStore,
    book_key: str,
    rule_id: str,
    scope: RuleScope | str,
    **changes: Any,
) -> ReplacementRule | None:
    """Apply ``changes`` to the rule with ``rule_id``; unknown ids are ignored."""
    scope = _coerce_scope(scope)
    if "id" in changes:
        raise ValueError("Rule ids are immutable")
    unknown = set(changes) - _RULE_FIELDS
    if unknown:
        raise TypeError(f"Unknown rule fields: {', '.join(sorted(unknown))}")

    if scope is RuleScope.GLOBAL:
        rules = store.get_global_rules()
    else:
        rules = store.get_book_rules(book_key)

    updated: ReplacementRule | None = None
    for idx, current in enumerate(rules):
        if current.id != rule_id:
            continue
        candidate = replace(current, **changes)
        if "pattern" in changes or "is_regex" in changes:
            validation = validate_pattern(candidate.pattern, candidate.is_regex)
            if not validation.valid:
                raise RuleValidationError(validation.error or "Invalid pattern")
        rules[idx] = candidate
        updated = candidate

    if scope is RuleScope.GLOBAL:
        store.save_global_rules(rules)
    else:
        store.save_book_rules(book_key, rules)
    return updated


def toggle_rule(
    store: RuleStore,
    book_key: str,
    rule_id: str,
    scope: RuleScope | str,
) -> ReplacementRule | None:
    scope = _coerce_scope(scope)
    if scope is RuleScope.GLOBAL:
        rules = store.get_global_rules()
    else:
        rules = store.get_book_rules(book_key)
    current = next((r for r in rules if r.id == rule_id), None)
    if current is None:
        raise RuleNotFoundError(f"Rule not found: {rule_id}")
    return update_rule(store, book_key, rule_id, scope, enabled=not current.enabled)


__all__ = [
    "RuleNotFoundError",
    "RuleScope",
    "add_rule",
    "get_merged_rules",
    "remove_rule",
    "toggle_rule",
    "update_rule",
]

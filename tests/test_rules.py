from __future__ import annotations

import pytest

from proofread.rules import (
    DEFAULT_RULE_ORDER,
    ReplacementRule,
    RuleValidationError,
    create_rule,
    merge_rules,
    section_base,
    select_application_order,
    validate_pattern,
)


def test_create_rule_defaults() -> None:
    rule = create_rule("test", "TEST")
    assert rule.pattern == "test"
    assert rule.replacement == "TEST"
    assert rule.is_regex is False
    assert rule.enabled is True
    assert rule.case_sensitive is True
    assert rule.order == DEFAULT_RULE_ORDER
    assert rule.single_instance is False
    assert rule.is_global is False
    assert isinstance(rule.id, str) and rule.id


def test_create_rule_assigns_unique_ids() -> None:
    assert create_rule("a", "b").id != create_rule("a", "b").id


@pytest.mark.parametrize(
    ("pattern", "is_regex"),
    [("", False), ("   ", False), ("[invalid", True)],
)
def test_create_rule_rejects_bad_patterns(pattern: str, is_regex: bool) -> None:
    with pytest.raises(RuleValidationError):
        create_rule(pattern, "x", is_regex=is_regex)


def test_create_rule_rejects_negative_occurrence() -> None:
    with pytest.raises(RuleValidationError):
        create_rule("cat", "dog", single_instance=True, occurrence_index=-1)


def test_validate_pattern() -> None:
    assert validate_pattern("test", False).valid
    assert validate_pattern(r"\d+", True).valid
    # Literal patterns are escaped, so regex syntax is fine there.
    assert validate_pattern("[invalid", False).valid

    empty = validate_pattern("", False)
    assert not empty.valid
    assert "empty" in (empty.error or "")

    broken = validate_pattern("[invalid", True)
    assert not broken.valid
    assert broken.error


def test_validate_pattern_checks_the_anchored_form() -> None:
    assert validate_pattern("(?i)teh", True).valid
    late_flag = validate_pattern("teh(?i)", True)
    assert not late_flag.valid
    assert "Invalid regex pattern" in (late_flag.error or "")
    with pytest.raises(RuleValidationError):
        create_rule("teh(?i)", "the", is_regex=True)


def test_merge_rules_book_wins_and_sorts() -> None:
    global_rules = [
        ReplacementRule(id="rule-3", pattern="c", replacement="C", order=3),
        ReplacementRule(id="rule-1", pattern="the", replacement="THE", order=1),
    ]
    book_rules = [
        ReplacementRule(id="rule-2", pattern="b", replacement="B", order=2),
        ReplacementRule(id="rule-1", pattern="the", replacement=">THE<", order=1),
    ]
    merged = merge_rules(global_rules, book_rules)
    assert [rule.id for rule in merged] == ["rule-1", "rule-2", "rule-3"]
    assert merged[0].replacement == ">THE<"


def test_merge_rules_handles_missing_collections() -> None:
    assert merge_rules(None, None) == []
    only_book = [ReplacementRule(id="b", pattern="x", replacement="y")]
    assert merge_rules(None, only_book) == only_book


def test_select_application_order_buckets() -> None:
    rules = [
        ReplacementRule(id="lib", pattern="a", replacement="", is_global=True, order=0),
        ReplacementRule(id="book", pattern="a", replacement="", order=1),
        ReplacementRule(id="one", pattern="a", replacement="", single_instance=True, order=2),
        ReplacementRule(id="lib-single", pattern="a", replacement="", single_instance=True, is_global=True, order=3),
        ReplacementRule(id="book2", pattern="a", replacement="", order=4),
    ]
    ordered = select_application_order(rules)
    assert [rule.id for rule in ordered] == ["one", "lib-single", "book", "book2", "lib"]


def test_section_base() -> None:
    assert section_base("ch1.xhtml#p4") == "ch1.xhtml"
    assert section_base("ch1.xhtml") == "ch1.xhtml"
    assert section_base(None) is None


def test_payload_uses_camel_case_keys() -> None:
    rule = create_rule(
        "teh",
        "the",
        case_sensitive=False,
        single_instance=True,
        section_href="ch3.xhtml",
        occurrence_index=2,
        is_global=False,
    )
    payload = rule.as_payload()
    assert payload["caseSensitive"] is False
    assert payload["singleInstance"] is True
    assert payload["sectionHref"] == "ch3.xhtml"
    assert payload["occurrenceIndex"] == 2
    assert payload["global"] is False
    assert ReplacementRule.from_payload(payload) == rule


def test_from_payload_fills_defaults_and_rejects_garbage() -> None:
    rule = ReplacementRule.from_payload({"id": "1", "pattern": "test", "order": None})
    assert rule is not None
    assert rule.replacement == ""
    assert rule.enabled is True
    assert rule.case_sensitive is True
    assert rule.order == DEFAULT_RULE_ORDER
    assert rule.occurrence_index is None

    assert ReplacementRule.from_payload({"pattern": "no id"}) is None
    assert ReplacementRule.from_payload({"id": "2", "pattern": 5}) is None
    assert ReplacementRule.from_payload(["not", "a", "mapping"]) is None

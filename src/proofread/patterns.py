from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable

from .logging_utils import _debug_log, warn_skipped_rule
from .rules import ReplacementRule, rule_applies_to_section, select_application_order

_ASCII_WORD_RUN = re.compile(r"\w+", re.ASCII)
_LEADING_PUNCT = re.compile(r"[^\w\s]", re.ASCII)
_TRAILING_PUNCT = re.compile(r"[^\w\s]\Z", re.ASCII)
# Global inline flags such as (?i) are only legal at the very start.
_LEADING_INLINE_FLAGS = re.compile(r"\A(?:\(\?[aiLmsux]+\))+")


@dataclass(slots=True)
class NormalizedPattern:
    source: str
    flags: int
    unicode: bool


@dataclass(slots=True)
class CompiledRule:
    rule: ReplacementRule
    regex: re.Pattern[str]


def has_unicode_chars(text: str) -> bool:
    return not text.isascii()


def is_unicode_word_char(ch: str) -> bool:
    if not ch:
        return False
    if ch == "_":
        return True
    return unicodedata.category(ch)[0] in ("L", "N")


def normalize_pattern(pattern: str, is_regex: bool, case_sensitive: bool = True) -> NormalizedPattern:
    """Turn a rule pattern into a regex source with whole-word anchoring.

    ASCII patterns compile with ``re.ASCII`` so ``\\b`` only treats ASCII
    letters, digits and underscore as word characters. Patterns containing
    any non-ASCII character get no anchors at all; :func:`is_valid_match`
    checks their neighbours instead.

    Literals that begin or end with punctuation are anchored around their
    first run of word characters only, e.g. ``scholar;`` becomes
    ``\\bscholar\\b;``.
    """
    unicode = has_unicode_chars(pattern)
    flags = 0 if unicode else re.ASCII
    if not case_sensitive:
        flags |= re.IGNORECASE

    if is_regex:
        if "\\b" in pattern or unicode:
            return NormalizedPattern(pattern, flags, unicode)
        lead = _LEADING_INLINE_FLAGS.match(pattern)
        prefix = lead.group(0) if lead else ""
        body = pattern[len(prefix):]
        return NormalizedPattern(f"{prefix}\\b(?:{body})\\b", flags, unicode)

    escaped = re.escape(pattern)
    if unicode:
        return NormalizedPattern(escaped, flags, unicode)

    if _LEADING_PUNCT.match(pattern) or _TRAILING_PUNCT.search(pattern):
        word = _ASCII_WORD_RUN.search(pattern)
        if word is None:
            return NormalizedPattern(escaped, flags, unicode)
        start, end = word.span()
        source = (
            f"{re.escape(pattern[:start])}\\b{re.escape(word.group(0))}\\b{re.escape(pattern[end:])}"
        )
        return NormalizedPattern(source, flags, unicode)

    return NormalizedPattern(f"\\b{escaped}\\b", flags, unicode)


def compile_pattern(normalized: NormalizedPattern) -> re.Pattern[str]:
    return re.compile(normalized.source, normalized.flags)


def is_valid_match(text: str, start: int, end: int, rule: ReplacementRule) -> bool:
    if not rule.is_regex:
        matched = text[start:end]
        if rule.case_sensitive:
            if matched != rule.pattern:
                return False
        elif matched.lower() != rule.pattern.lower():
            return False

    if has_unicode_chars(rule.pattern):
        before = text[start - 1] if start > 0 else ""
        after = text[end] if end < len(text) else ""
        if is_unicode_word_char(before) or is_unicode_word_char(after):
            return False

    return True


def compile_rules(
    rules: Iterable[ReplacementRule],
    section_href: str | None,
) -> list[CompiledRule]:
    """Filter, order and compile rules for one transform call.

    Disabled rules, blank patterns and rules scoped to another section are
    dropped. A rule whose pattern no longer compiles is skipped with a
    warning; the remaining rules are still returned.
    """
    active = [rule for rule in rules if rule.enabled and rule.pattern and rule.pattern.strip()]
    compiled: list[CompiledRule] = []
    for rule in select_application_order(active):
        if not rule_applies_to_section(rule, section_href):
            _debug_log(f"rule {rule.id} scoped to {rule.section_href!r}; skipping {section_href!r}")
            continue
        normalized = normalize_pattern(rule.pattern, rule.is_regex, rule.case_sensitive)
        try:
            regex = compile_pattern(normalized)
        except (re.error, ValueError) as exc:
            warn_skipped_rule(rule.id, rule.pattern, exc)
            continue
        compiled.append(CompiledRule(rule=rule, regex=regex))
    return compiled


# ---------- substituted region bookkeeping ----------

def range_is_free(ranges: list[tuple[int, int]], start: int, end: int) -> bool:
    for existing_start, existing_end in ranges:
        if end <= existing_start:
            continue
        if start >= existing_end:
            continue
        return False
    return True


def iter_accepted_matches(
    text: str,
    compiled: CompiledRule,
    regions: list[tuple[int, int]],
) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for match in compiled.regex.finditer(text):
        start, end = match.span()
        if start == end:
            continue
        if not is_valid_match(text, start, end, compiled.rule):
            continue
        if not range_is_free(regions, start, end):
            continue
        spans.append((start, end))
    return spans


def substitute_span(
    text: str,
    regions: list[tuple[int, int]],
    start: int,
    end: int,
    replacement: str,
) -> str:
    """Replace ``text[start:end]`` and keep ``regions`` aligned with the result."""
    delta = len(replacement) - (end - start)
    if delta:
        for idx, (region_start, region_end) in enumerate(regions):
            if region_start >= end:
                regions[idx] = (region_start + delta, region_end + delta)
    regions.append((start, start + len(replacement)))
    regions.sort(key=lambda item: item[0])
    return text[:start] + replacement + text[end:]


__all__ = [
    "CompiledRule",
    "NormalizedPattern",
    "compile_pattern",
    "compile_rules",
    "has_unicode_chars",
    "is_unicode_word_char",
    "is_valid_match",
    "iter_accepted_matches",
    "normalize_pattern",
    "range_is_free",
    "substitute_span",
]

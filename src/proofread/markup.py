"""Offset-tracked replacement directly on serialized markup.

Some callers hand over markup that must not be re-parsed. This strategy
matches against the raw string instead of a tree and keeps a list of
already-substituted regions so that a later rule can never re-match text an
earlier rule inserted. Tags, comments, CDATA sections, entity references and
whole ``script``/``style`` elements are protected from matching.
"""

from __future__ import annotations

import html
import re
from bisect import bisect_right
from typing import Iterable

from .logging_utils import _debug_log
from .patterns import CompiledRule, compile_rules, iter_accepted_matches, substitute_span
from .rules import ReplacementRule

_PROTECTED_RE = re.compile(
    r"<!--.*?-->"
    r"|<!\[CDATA\[.*?\]\]>"
    r"|<(script|style)\b[^>]*>.*?</\1\s*>"
    # Quoted attribute values may contain ">".
    r"""|<(?:[^>"']|"[^"]*"|'[^']*')*>"""
    r"|&#?[A-Za-z0-9]+;",
    re.DOTALL | re.IGNORECASE,
)


def _protected_spans(markup: str) -> list[tuple[int, int]]:
    return [match.span() for match in _PROTECTED_RE.finditer(markup)]


def _overlaps_protected(
    spans: list[tuple[int, int]],
    starts: list[int],
    start: int,
    end: int,
) -> bool:
    idx = bisect_right(starts, start) - 1
    if idx >= 0 and spans[idx][1] > start:
        return True
    nxt = idx + 1
    return nxt < len(spans) and spans[nxt][0] < end


def _candidate_spans(
    markup: str,
    compiled: CompiledRule,
    regions: list[tuple[int, int]],
) -> list[tuple[int, int]]:
    protected = _protected_spans(markup)
    starts = [span[0] for span in protected]
    accepted: list[tuple[int, int]] = []
    for start, end in iter_accepted_matches(markup, compiled, regions):
        if start > 0 and markup[start - 1] == "<":
            continue
        if end < len(markup) and markup[end] == ">":
            continue
        if protected and _overlaps_protected(protected, starts, start, end):
            continue
        accepted.append((start, end))
    return accepted


def apply_rules_to_markup(
    content: str,
    rules: Iterable[ReplacementRule],
    section_href: str | None = None,
) -> str:
    compiled_rules = compile_rules(rules, section_href)
    if not compiled_rules:
        return content

    markup = content
    regions: list[tuple[int, int]] = []
    for compiled in compiled_rules:
        spans = _candidate_spans(markup, compiled, regions)
        if not spans:
            continue
        replacement = html.escape(compiled.rule.replacement, quote=False)
        if compiled.rule.single_instance:
            target = compiled.rule.occurrence_index or 0
            if target < 0 or target >= len(spans):
                continue
            spans = [spans[target]]
        for start, end in reversed(spans):
            markup = substitute_span(markup, regions, start, end, replacement)
        _debug_log(f"rule {compiled.rule.id} ({compiled.rule.pattern!r}) replaced {len(spans)} match(es)")
    return markup


__all__ = ["apply_rules_to_markup"]

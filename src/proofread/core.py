from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Iterable

from bs4 import (
    BeautifulSoup,
    FeatureNotFound,
    MarkupResemblesLocatorWarning,
    NavigableString,
    XMLParsedAsHTMLWarning,
)
from bs4.element import PreformattedString

from .logging_utils import _debug_log
from .markup import apply_rules_to_markup
from .patterns import CompiledRule, compile_rules, iter_accepted_matches, substitute_span
from .rules import ReplacementRule, merge_rules

STRATEGY_TREE = "tree"
STRATEGY_MARKUP = "markup"
STRATEGIES = (STRATEGY_TREE, STRATEGY_MARKUP)

# Text inside these elements is never rendered as book content.
NON_RENDERABLE_TAGS = frozenset({"script", "style"})


@dataclass(slots=True)
class _TextLeaf:
    node: NavigableString
    text: str
    regions: list[tuple[int, int]] = field(default_factory=list)
    changed: bool = False


def _soup_from_fragment(content: str) -> BeautifulSoup:
    stripped = content.lstrip()
    lower_head = stripped[:200].lower()
    xmlish = stripped.startswith("<?xml") or (
        "<html" in lower_head and "xmlns" in lower_head
    )

    if xmlish:
        try:
            return BeautifulSoup(content, "lxml-xml")
        except FeatureNotFound:
            pass

    # html.parser keeps bare fragments as-is instead of wrapping them in <html><body>.
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)
        return BeautifulSoup(content, "html.parser")


def _is_renderable_leaf(node: object) -> bool:
    if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
        return False
    parent = node.parent
    if parent is not None and (parent.name or "").lower() in NON_RENDERABLE_TAGS:
        return False
    return bool(str(node).strip())


def _collect_text_leaves(soup: BeautifulSoup) -> list[_TextLeaf]:
    return [
        _TextLeaf(node=node, text=str(node))
        for node in soup.descendants
        if _is_renderable_leaf(node)
    ]


def _apply_single_instance(leaves: list[_TextLeaf], compiled: CompiledRule) -> int:
    target = compiled.rule.occurrence_index or 0
    if target < 0:
        return 0
    seen = 0
    for leaf in leaves:
        spans = iter_accepted_matches(leaf.text, compiled, leaf.regions)
        if seen + len(spans) <= target:
            seen += len(spans)
            continue
        start, end = spans[target - seen]
        leaf.text = substitute_span(leaf.text, leaf.regions, start, end, compiled.rule.replacement)
        leaf.changed = True
        return 1
    return 0


def _apply_to_each_leaf(leaves: list[_TextLeaf], compiled: CompiledRule) -> int:
    count = 0
    for leaf in leaves:
        spans = iter_accepted_matches(leaf.text, compiled, leaf.regions)
        if not spans:
            continue
        # Right to left so pending offsets in this leaf stay valid.
        for start, end in reversed(spans):
            leaf.text = substitute_span(leaf.text, leaf.regions, start, end, compiled.rule.replacement)
        leaf.changed = True
        count += len(spans)
    return count


def apply_rules_to_tree(
    content: str,
    rules: Iterable[ReplacementRule],
    section_href: str | None = None,
) -> str:
    """Apply merged rules to the text leaves of a markup fragment.

    Rules are applied in bucket order (single-instance, book, library).
    Matching never crosses leaf boundaries. Text inserted by one rule is
    protected from every later rule in the same pass. When nothing is
    substituted the original string is returned untouched.
    """
    compiled_rules = compile_rules(rules, section_href)
    if not compiled_rules:
        return content

    soup = _soup_from_fragment(content)
    leaves = _collect_text_leaves(soup)
    if not leaves:
        return content

    total = 0
    for compiled in compiled_rules:
        if compiled.rule.single_instance:
            applied = _apply_single_instance(leaves, compiled)
        else:
            applied = _apply_to_each_leaf(leaves, compiled)
        if applied:
            _debug_log(f"rule {compiled.rule.id} ({compiled.rule.pattern!r}) replaced {applied} match(es)")
        total += applied

    if not total:
        return content
    for leaf in leaves:
        if leaf.changed:
            leaf.node.replace_with(NavigableString(leaf.text))
    return str(soup)


def transform(
    content: str,
    section_href: str | None,
    book_rules: Iterable[ReplacementRule] | None,
    global_rules: Iterable[ReplacementRule] | None = None,
    *,
    strategy: str = STRATEGY_TREE,
) -> str:
    merged = merge_rules(global_rules, book_rules)
    _debug_log(
        f"transform section={section_href!r} merged_rules={len(merged)} strategy={strategy}"
    )
    if not any(rule.enabled for rule in merged):
        return content
    if strategy == STRATEGY_TREE:
        return apply_rules_to_tree(content, merged, section_href)
    if strategy == STRATEGY_MARKUP:
        return apply_rules_to_markup(content, merged, section_href)
    raise ValueError(f"Unknown replacement strategy: {strategy!r}")


__all__ = [
    "NON_RENDERABLE_TAGS",
    "STRATEGIES",
    "STRATEGY_MARKUP",
    "STRATEGY_TREE",
    "apply_rules_to_tree",
    "transform",
]

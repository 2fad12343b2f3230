from __future__ import annotations

import pytest

from proofread.lifecycle import RuleScope, add_rule
from proofread.pipeline import (
    FunctionTransformer,
    ReplacementTransformer,
    TransformContext,
    transform_content,
)
from proofread.store import MemoryRuleStore, MissingBookConfigError


def _ctx(content: str, transformers: list[str] | None = None) -> TransformContext:
    ctx = TransformContext(book_key="book-1", section_href="ch1.xhtml", content=content)
    if transformers is not None:
        ctx.transformers = transformers
    return ctx


def test_replacement_stage_rereads_store_each_call() -> None:
    store = MemoryRuleStore(book_rules={"book-1": []})
    stage = ReplacementTransformer(store)
    assert stage.transform(_ctx("<p>teh cat</p>")) == "<p>teh cat</p>"

    add_rule(store, "book-1", {"pattern": "teh", "replacement": "the"}, RuleScope.GLOBAL)
    assert stage.transform(_ctx("<p>teh cat</p>")) == "<p>the cat</p>"


def test_replacement_stage_uses_configured_strategy() -> None:
    store = MemoryRuleStore(book_rules={"book-1": []})
    add_rule(store, "book-1", {"pattern": "cat", "replacement": "dog"}, RuleScope.BOOK)
    stage = ReplacementTransformer(store, strategy="markup")
    # The markup strategy never re-serializes, so the unusual quoting survives.
    assert stage.transform(_ctx("<p class='x'>cat</p>")) == "<p class='x'>dog</p>"


def test_transform_content_runs_named_stages_in_order() -> None:
    store = MemoryRuleStore(book_rules={"book-1": []})
    add_rule(store, "book-1", {"pattern": "teh", "replacement": "the"}, RuleScope.BOOK)
    upper = FunctionTransformer("upper", lambda ctx: ctx.content.upper())
    stages = [upper, ReplacementTransformer(store)]

    ctx = _ctx("<p>teh cat</p>", ["replacement", "upper", "missing"])
    assert transform_content(ctx, stages) == "<P>THE CAT</P>"

    ctx = _ctx("<p>teh cat</p>", ["upper", "replacement"])
    assert transform_content(ctx, stages) == "<P>TEH CAT</P>"


def test_failing_stage_keeps_previous_content() -> None:
    def _boom(ctx: TransformContext) -> str:
        raise RuntimeError("boom")

    stages = [
        FunctionTransformer("boom", _boom),
        FunctionTransformer("suffix", lambda ctx: ctx.content + "!"),
    ]
    with pytest.warns(RuntimeWarning, match="boom"):
        result = transform_content(_ctx("<p>x</p>", ["boom", "suffix"]), stages)
    assert result == "<p>x</p>!"


def test_missing_book_is_not_swallowed() -> None:
    store = MemoryRuleStore()
    ctx = _ctx("<p>teh</p>")
    with pytest.raises(MissingBookConfigError, match="book-1"):
        transform_content(ctx, [ReplacementTransformer(store)])

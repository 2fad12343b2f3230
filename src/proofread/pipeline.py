from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Protocol

from .core import STRATEGY_TREE, transform
from .logging_utils import _debug_log
from .store import MissingBookConfigError, RuleStore


@dataclass
class TransformContext:
    book_key: str
    section_href: str | None
    content: str
    transformers: list[str] = field(default_factory=lambda: ["replacement"])


class Transformer(Protocol):
    name: str

    def transform(self, ctx: TransformContext) -> str: ...


@dataclass
class FunctionTransformer:
    name: str
    func: Callable[[TransformContext], str]

    def transform(self, ctx: TransformContext) -> str:
        return self.func(ctx)


class ReplacementTransformer:
    """Pipeline stage that applies the merged replacement rules of a book."""

    name = "replacement"

    def __init__(self, store: RuleStore, *, strategy: str = STRATEGY_TREE) -> None:
        self.store = store
        self.strategy = strategy

    def transform(self, ctx: TransformContext) -> str:
        # Collections are re-read per call; edits between renders must be visible.
        return transform(
            ctx.content,
            ctx.section_href,
            self.store.get_book_rules(ctx.book_key),
            self.store.get_global_rules(),
            strategy=self.strategy,
        )


def transform_content(ctx: TransformContext, available: Iterable[Transformer]) -> str:
    """Run the stages named in ``ctx.transformers`` in order.

    Unknown names are ignored. A stage that raises is skipped with a warning
    and the content from the previous stage is carried forward. A missing
    book configuration is a caller error and propagates.
    """
    by_name = {transformer.name: transformer for transformer in available}
    transformed = ctx.content
    for name in ctx.transformers:
        transformer = by_name.get(name)
        if transformer is None:
            _debug_log(f"no transformer named {name!r}")
            continue
        try:
            transformed = transformer.transform(replace(ctx, content=transformed))
        except MissingBookConfigError:
            raise
        except Exception as exc:
            warnings.warn(f"Error in transformer {name}: {exc}", RuntimeWarning, stacklevel=2)
    return transformed


__all__ = [
    "FunctionTransformer",
    "ReplacementTransformer",
    "TransformContext",
    "Transformer",
    "transform_content",
]

from .core import apply_rules_to_tree, transform
from .lifecycle import (
    RuleNotFoundError,
    RuleScope,
    add_rule,
    get_merged_rules,
    remove_rule,
    toggle_rule,
    update_rule,
)
from .markup import apply_rules_to_markup
from .pipeline import ReplacementTransformer, TransformContext, transform_content
from .rules import (
    PatternValidation,
    ReplacementRule,
    RuleValidationError,
    create_rule,
    merge_rules,
    select_application_order,
    validate_pattern,
)
from .store import JsonRuleStore, MemoryRuleStore, MissingBookConfigError

__all__ = [
    "ReplacementRule",
    "PatternValidation",
    "RuleValidationError",
    "create_rule",
    "validate_pattern",
    "merge_rules",
    "select_application_order",
    "transform",
    "apply_rules_to_tree",
    "apply_rules_to_markup",
    "RuleScope",
    "RuleNotFoundError",
    "add_rule",
    "remove_rule",
    "update_rule",
    "toggle_rule",
    "get_merged_rules",
    "JsonRuleStore",
    "MemoryRuleStore",
    "MissingBookConfigError",
    "ReplacementTransformer",
    "TransformContext",
    "transform_content",
]

"""Classification of products sold without a catalog id."""

from pos_bundles.classify.unclassified import (
    ClassificationRule,
    RuleBook,
    UnclassifiedProduct,
    find_unclassified,
    has_valid_id,
    suggest_category,
    summary,
)

__all__ = [
    "ClassificationRule",
    "RuleBook",
    "UnclassifiedProduct",
    "find_unclassified",
    "has_valid_id",
    "suggest_category",
    "summary",
]

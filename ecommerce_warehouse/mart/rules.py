"""
Ordered Classification Rules

Tier and segment labels are assigned by evaluating (label, conditions)
rules in a fixed order; the first matching rule wins and the default
label applies when none match.

Conditions are column thresholds, so the same rules classify a single row
(`RuleSet.evaluate`) and a whole frame as a `pl.when` chain
(`RuleSet.to_expr`). A missing value never satisfies a condition.
"""

import operator
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Sequence

import polars as pl


@dataclass(frozen=True)
class Condition:
    """column <op> threshold"""
    column: str
    op: Callable[[Any, Any], bool]
    threshold: float

    def matches(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.column)
        return value is not None and self.op(value, self.threshold)

    def expr(self) -> pl.Expr:
        return self.op(pl.col(self.column), self.threshold).fill_null(False)


def at_least(column: str, threshold: float) -> Condition:
    return Condition(column, operator.ge, threshold)


def at_most(column: str, threshold: float) -> Condition:
    return Condition(column, operator.le, threshold)


class Rule:
    """A label and the conditions a row must all satisfy to receive it"""

    def __init__(self, label: str, *conditions: Condition):
        self.label = label
        self.conditions = conditions

    def matches(self, row: Mapping[str, Any]) -> bool:
        return all(condition.matches(row) for condition in self.conditions)

    def expr(self) -> pl.Expr:
        if not self.conditions:
            return pl.lit(True)
        return pl.all_horizontal([condition.expr() for condition in self.conditions])


class RuleSet:
    """
    Ordered first-match classifier.

    Example:
        tiers = RuleSet("tier", [Rule("big", at_least("n", 10))], default="small")
        tiers.evaluate({"n": 12})  # "big"
        df.with_columns(tiers.to_expr())
    """

    def __init__(self, name: str, rules: Sequence[Rule], default: str):
        self.name = name
        self.rules = list(rules)
        self.default = default

    @property
    def labels(self) -> List[str]:
        return [rule.label for rule in self.rules] + [self.default]

    def evaluate(self, row: Mapping[str, Any]) -> str:
        """Label of the first rule matching row"""
        for rule in self.rules:
            if rule.matches(row):
                return rule.label
        return self.default

    def to_expr(self) -> pl.Expr:
        """Label expression aliased to the rule set name"""
        if not self.rules:
            return pl.lit(self.default).alias(self.name)

        first, *rest = self.rules
        chain = pl.when(first.expr()).then(pl.lit(first.label))
        for rule in rest:
            chain = chain.when(rule.expr()).then(pl.lit(rule.label))
        return chain.otherwise(pl.lit(self.default)).alias(self.name)


SELLER_TIER_RULES = RuleSet(
    "seller_tier",
    [
        Rule("gold", at_least("total_orders", 50), at_least("avg_review_score", 4.0)),
        Rule("silver", at_least("total_orders", 20), at_least("avg_review_score", 3.5)),
        Rule("bronze", at_least("total_orders", 5)),
    ],
    default="new",
)

CUSTOMER_SEGMENT_RULES = RuleSet(
    "customer_segment",
    [
        Rule(
            "champions",
            at_least("recency_quintile", 4),
            at_least("frequency_quintile", 4),
            at_least("monetary_quintile", 4),
        ),
        Rule("loyal", at_least("recency_quintile", 4), at_least("frequency_quintile", 3)),
        Rule("big_spenders", at_least("recency_quintile", 4), at_least("monetary_quintile", 4)),
        Rule("recent", at_least("recency_quintile", 4)),
        Rule("frequent", at_least("frequency_quintile", 4)),
        Rule("at_risk", at_most("recency_quintile", 2), at_most("frequency_quintile", 2)),
    ],
    default="regular",
)

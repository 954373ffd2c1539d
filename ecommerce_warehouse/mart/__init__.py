"""Mart layer: reporting views, RFM segments and seller tiers"""

from .ranking import ntile_map, percent_rank
from .rules import (
    CUSTOMER_SEGMENT_RULES,
    SELLER_TIER_RULES,
    Condition,
    Rule,
    RuleSet,
    at_least,
    at_most,
)
from .views import (
    MART_VIEWS,
    MartBuilder,
    MartInputs,
    MartView,
    build_category_analysis,
    build_customer_segments,
    build_daily_revenue,
    build_monthly_revenue,
    build_seller_scorecard,
    build_state_performance,
    recency_anchor,
)

__all__ = [
    "ntile_map",
    "percent_rank",
    "Condition",
    "Rule",
    "RuleSet",
    "at_least",
    "at_most",
    "SELLER_TIER_RULES",
    "CUSTOMER_SEGMENT_RULES",
    "MART_VIEWS",
    "MartView",
    "MartInputs",
    "MartBuilder",
    "recency_anchor",
    "build_monthly_revenue",
    "build_state_performance",
    "build_category_analysis",
    "build_seller_scorecard",
    "build_customer_segments",
    "build_daily_revenue",
]

"""
Unit Tests - Mart Layer
"""
from datetime import date, datetime, timedelta

import polars as pl
import pytest

from ecommerce_warehouse.intermediate import build_customer_history, build_seller_performance
from ecommerce_warehouse.mart import (
    CUSTOMER_SEGMENT_RULES,
    MART_VIEWS,
    SELLER_TIER_RULES,
    MartBuilder,
    MartInputs,
    Rule,
    RuleSet,
    at_least,
    at_most,
    build_category_analysis,
    build_customer_segments,
    build_daily_revenue,
    build_monthly_revenue,
    build_seller_scorecard,
    build_state_performance,
    ntile_map,
    percent_rank,
    recency_anchor,
)


@pytest.fixture
def seller_performance(staging_tables, orders_enriched):
    return build_seller_performance(staging_tables["sellers"], staging_tables["order_items"], orders_enriched)


@pytest.fixture
def customer_history(staging_tables, orders_enriched):
    return build_customer_history(orders_enriched, staging_tables["order_payments"])


@pytest.fixture
def mart_inputs(staging_tables, orders_enriched, seller_performance, customer_history):
    return MartInputs(
        orders_enriched=orders_enriched,
        items=staging_tables["order_items"],
        products=staging_tables["products"],
        seller_performance=seller_performance,
        customer_history=customer_history,
        recency_anchor=recency_anchor(orders_enriched),
    )


class TestNtile:
    """Tests for population bucketing"""

    def test_bucket_sizes_differ_by_at_most_one(self):
        df = pl.DataFrame({"key": [f"k{i:02d}" for i in range(11)], "value": list(range(11))})

        buckets = ntile_map(df, "key", "value", 5)
        sizes = buckets.group_by("ntile").len().sort("ntile")["len"].to_list()

        assert sizes == [3, 2, 2, 2, 2]

    def test_ascending_order(self):
        df = pl.DataFrame({"key": ["a", "b", "c", "d", "e"], "value": [50, 10, 40, 20, 30]})

        buckets = ntile_map(df, "key", "value", 5).sort("key")

        assert buckets["ntile"].to_list() == [5, 1, 4, 2, 3]

    def test_descending_order(self):
        df = pl.DataFrame({"key": ["a", "b", "c", "d", "e"], "value": [50, 10, 40, 20, 30]})

        buckets = ntile_map(df, "key", "value", 5, descending=True).sort("key")

        assert buckets["ntile"].to_list() == [1, 5, 2, 4, 3]

    def test_nulls_land_lowest_and_ties_use_key(self):
        df = pl.DataFrame({"key": ["b", "a", "c"], "value": [7, 7, None]})

        buckets = ntile_map(df, "key", "value", 3, alias="bucket").sort("key")

        assert buckets["bucket"].to_list() == [2, 3, 1]

    def test_fewer_rows_than_buckets(self):
        df = pl.DataFrame({"key": ["a", "b"], "value": [1, 2]})

        assert ntile_map(df, "key", "value", 5).sort("key")["ntile"].to_list() == [1, 2]

    def test_invalid_bucket_count(self):
        with pytest.raises(ValueError):
            ntile_map(pl.DataFrame({"key": ["a"], "value": [1]}), "key", "value", 0)


class TestPercentRank:
    """Tests for percent rank"""

    def test_peers_share_lowest_rank(self):
        df = pl.DataFrame({"v": [10, 20, 20, 30]})

        result = df.select(percent_rank("v"))["v"].to_list()

        assert result == pytest.approx([0.0, 0.333, 0.333, 1.0])

    def test_nulls_last_when_ascending(self):
        df = pl.DataFrame({"v": [1.0, None, 3.0]})

        assert df.select(percent_rank("v"))["v"].to_list() == pytest.approx([0.0, 1.0, 0.5])

    def test_nulls_first_when_descending(self):
        df = pl.DataFrame({"v": [1.0, None, 3.0]})

        assert df.select(percent_rank("v", descending=True))["v"].to_list() == pytest.approx([1.0, 0.0, 0.5])

    def test_single_row(self):
        assert pl.DataFrame({"v": [5]}).select(percent_rank("v"))["v"].to_list() == [0.0]


class TestRules:
    """Tests for ordered classification rules"""

    @pytest.mark.parametrize(
        "r,f,m,expected",
        [
            (5, 5, 5, "champions"),
            (5, 5, 2, "loyal"),
            (4, 1, 5, "big_spenders"),
            (4, 1, 1, "recent"),
            (3, 4, 1, "frequent"),
            (2, 2, 5, "at_risk"),
            (3, 3, 3, "regular"),
            (None, None, None, "regular"),
        ],
    )
    def test_customer_segments(self, r, f, m, expected):
        row = {"recency_quintile": r, "frequency_quintile": f, "monetary_quintile": m}

        assert CUSTOMER_SEGMENT_RULES.evaluate(row) == expected

    @pytest.mark.parametrize(
        "orders,review,expected",
        [
            (50, 4.0, "gold"),
            (50, 3.9, "silver"),
            (20, 3.0, "bronze"),
            (100, None, "bronze"),
            (4, 5.0, "new"),
        ],
    )
    def test_seller_tiers(self, orders, review, expected):
        assert SELLER_TIER_RULES.evaluate({"total_orders": orders, "avg_review_score": review}) == expected

    def test_first_match_wins(self):
        rules = RuleSet("size", [Rule("big", at_least("n", 2)), Rule("huge", at_least("n", 11))], "small")

        assert rules.evaluate({"n": 50}) == "big"
        assert rules.evaluate({"n": 0}) == "small"
        assert rules.labels == ["big", "huge", "small"]

    def test_to_expr(self):
        df = pl.DataFrame({"total_orders": [60, 1, 25, 30], "avg_review_score": [4.5, 5.0, None, 3.6]})

        tiers = df.select(SELLER_TIER_RULES.to_expr())

        assert tiers["seller_tier"].to_list() == ["gold", "new", "bronze", "silver"]

    def test_expr_agrees_with_row_evaluation(self):
        values = [None, 1, 2, 3, 4, 5]
        grid = pl.DataFrame(
            [[r, f, m] for r in values for f in values for m in values],
            schema={"recency_quintile": pl.Int64, "frequency_quintile": pl.Int64, "monetary_quintile": pl.Int64},
            orient="row",
        )

        vectorized = grid.select(CUSTOMER_SEGMENT_RULES.to_expr())["customer_segment"].to_list()

        assert vectorized == [CUSTOMER_SEGMENT_RULES.evaluate(row) for row in grid.iter_rows(named=True)]

    def test_missing_values_never_match(self):
        rules = RuleSet("flag", [Rule("low", at_most("score", 2))], "other")
        df = pl.DataFrame({"score": [1.0, None]})

        assert df.select(rules.to_expr())["flag"].to_list() == ["low", "other"]
        assert rules.evaluate({"score": None}) == "other"
        assert rules.evaluate({}) == "other"


class TestMartViews:
    """Tests for the reporting views"""

    def test_monthly_revenue(self, orders_enriched):
        monthly = build_monthly_revenue(orders_enriched)

        assert monthly["month_start"].to_list() == [date(2018, 1, 1), date(2018, 3, 1)]
        assert monthly["total_orders"].to_list() == [1, 1]
        assert monthly["gmv"].to_list() == pytest.approx([30.0, 120.0])
        assert monthly["late_delivery_pct"].to_list() == pytest.approx([0.0, 100.0])
        assert monthly["avg_delivery_days"].to_list() == pytest.approx([10.0, 25.0])

    def test_monthly_gmv_matches_delivered_orders(self, orders_enriched):
        delivered = orders_enriched.filter(pl.col("order_status") == "delivered")

        monthly = build_monthly_revenue(orders_enriched)

        assert monthly["gmv"].sum() == pytest.approx(delivered["total_order_value"].sum())

    def test_state_performance(self, orders_enriched):
        states = build_state_performance(orders_enriched)

        assert states["customer_state"].to_list() == ["RJ", "SP"]
        assert states["total_revenue"].to_list() == pytest.approx([120.0, 30.0])
        assert states["low_review_pct"].to_list() == pytest.approx([100.0, 0.0])
        assert states["late_delivery_pct"].to_list() == pytest.approx([100.0, 0.0])

    def test_category_analysis(self, staging_tables, orders_enriched):
        categories = build_category_analysis(
            staging_tables["order_items"], staging_tables["products"], orders_enriched, min_orders=1
        )

        assert categories["product_category"].to_list() == ["health_beauty", "toys"]
        assert categories["total_orders"].to_list() == [2, 1]
        assert categories["total_revenue"].to_list() == pytest.approx([110.0, 15.0])
        assert categories["seller_count"].to_list() == [2, 1]

    def test_category_minimum_orders(self, staging_tables, orders_enriched):
        categories = build_category_analysis(
            staging_tables["order_items"], staging_tables["products"], orders_enriched, min_orders=2
        )

        assert categories["product_category"].to_list() == ["health_beauty"]

    def test_seller_scorecard(self, seller_performance):
        scorecard = build_seller_scorecard(seller_performance)

        assert scorecard["seller_id"].to_list() == ["s2", "s1"]
        assert scorecard["revenue_percentile"].to_list() == [1.0, 0.0]
        assert scorecard["review_percentile"].to_list() == [0.0, 1.0]
        assert scorecard["delivery_speed_percentile"].to_list() == [0.0, 1.0]
        assert scorecard["seller_tier"].to_list() == ["new", "new"]

    def test_customer_segments(self, customer_history, orders_enriched):
        segments = build_customer_segments(customer_history, recency_anchor(orders_enriched))

        u1, u2 = segments.iter_rows(named=True)
        assert u1["recency_days"] == 0.0
        assert u2["recency_days"] == 10.0
        assert (u1["recency_quintile"], u1["frequency_quintile"], u1["monetary_quintile"]) == (2, 2, 1)
        assert (u2["recency_quintile"], u2["frequency_quintile"], u2["monetary_quintile"]) == (1, 1, 2)
        assert segments["customer_segment"].to_list() == ["at_risk", "at_risk"]

    def test_customer_quintiles_are_balanced(self):
        anchor = datetime(2018, 12, 31)
        history = pl.DataFrame({
            "customer_unique_id": [f"u{i:02d}" for i in range(10)],
            "lifetime_orders": [1 + i // 3 for i in range(10)],
            "lifetime_value": [float(100 + i * 10) for i in range(10)],
            "avg_order_value": [100.0] * 10,
            "avg_review_score": [4.0] * 10,
            "first_order_date": [datetime(2018, 1, 1)] * 10,
            "last_order_date": [anchor - timedelta(days=10 * i) for i in range(10)],
            "is_repeat_customer": [i >= 3 for i in range(10)],
            "preferred_payment_method": ["credit_card"] * 10,
            "primary_state": ["SP"] * 10,
        })

        segments = build_customer_segments(history, anchor)

        for column in ("recency_quintile", "frequency_quintile", "monetary_quintile"):
            assert segments.group_by(column).len()["len"].to_list() == [2] * 5
        most_recent = segments.filter(pl.col("customer_unique_id") == "u00").row(0, named=True)
        assert most_recent["recency_quintile"] == 5
        assert most_recent["recency_days"] == 0.0

    def test_customer_segments_require_anchor(self, customer_history):
        with pytest.raises(ValueError):
            build_customer_segments(customer_history, None)

    def test_daily_revenue(self, orders_enriched):
        daily = build_daily_revenue(orders_enriched)

        assert daily.height == 65
        assert daily["calendar_date"][0] == date(2018, 1, 10)
        assert daily["calendar_date"][-1] == date(2018, 3, 15)
        assert daily["revenue"].sum() == pytest.approx(150.0)
        assert daily.filter(pl.col("calendar_date") == date(2018, 2, 1))["orders"].to_list() == [0]


class TestMartBuilder:
    """Tests for MartBuilder"""

    def test_build_all(self, mart_inputs):
        views = MartBuilder(min_category_orders=1).build_all(mart_inputs)

        assert sorted(views) == sorted(MART_VIEWS)
        assert views["category_analysis"].height == 2

    def test_build_view(self, mart_inputs):
        view = MartBuilder().build_view("monthly_revenue", mart_inputs)

        assert view.height == 2

    def test_unknown_view(self, mart_inputs):
        with pytest.raises(ValueError):
            MartBuilder().build_view("weekly_revenue", mart_inputs)

    def test_default_category_threshold(self, mart_inputs):
        views = MartBuilder().build_all(mart_inputs)

        assert views["category_analysis"].height == 0

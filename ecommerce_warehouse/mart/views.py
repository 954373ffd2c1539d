"""
Mart Views

Business-ready reporting views over the intermediate layer:
- Monthly revenue
- State performance
- Product category analysis
- Seller scorecard
- Customer RFM segments
- Daily revenue calendar

Only delivered orders count toward revenue and quality metrics. Ratio
metrics use null-safe division.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

import polars as pl
import structlog

from ecommerce_warehouse.calendar import days
from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.expressions import count_where, elapsed_days, percentage
from ecommerce_warehouse.intermediate.enrichment import DeliveryStatus
from ecommerce_warehouse.mart.ranking import ntile_map, percent_rank
from ecommerce_warehouse.mart.rules import CUSTOMER_SEGMENT_RULES, SELLER_TIER_RULES

logger = structlog.get_logger(__name__)

RFM_BUCKETS = 5


@dataclass(frozen=True)
class MartView:
    """Name and unique key of a mart view; unkeyed views have key None"""
    name: str
    key: Optional[Tuple[str, ...]]


MART_VIEWS: Dict[str, MartView] = {
    view.name: view
    for view in (
        MartView("monthly_revenue", ("month_start",)),
        MartView("state_performance", ("customer_state",)),
        MartView("category_analysis", ("product_category",)),
        MartView("seller_scorecard", None),
        MartView("customer_segments", ("customer_unique_id",)),
        MartView("daily_revenue", ("calendar_date",)),
    )
}


@dataclass
class MartInputs:
    """Snapshot of everything the mart layer reads"""
    orders_enriched: pl.DataFrame
    items: pl.DataFrame
    products: pl.DataFrame
    seller_performance: pl.DataFrame
    customer_history: pl.DataFrame
    recency_anchor: Optional[datetime] = None


def recency_anchor(orders_enriched: pl.DataFrame) -> Optional[datetime]:
    """Latest purchase timestamp of the dataset"""
    return orders_enriched["order_purchase_timestamp"].max()


def _delivered(orders_enriched: pl.DataFrame, delivered_status: str) -> pl.DataFrame:
    return orders_enriched.filter(pl.col("order_status") == delivered_status)


def _is_late() -> pl.Expr:
    return pl.col("delivery_status") == DeliveryStatus.LATE.value


def build_monthly_revenue(
    orders_enriched: pl.DataFrame,
    delivered_status: str = "delivered",
) -> pl.DataFrame:
    """GMV, order volume and quality per purchase month of delivered orders"""
    return (
        _delivered(orders_enriched, delivered_status)
        .with_columns(
            pl.col("order_purchase_timestamp").dt.truncate("1mo").dt.date().alias("month_start")
        )
        .group_by("month_start")
        .agg([
            pl.col("order_year").first(),
            pl.col("order_month").first(),
            pl.len().cast(pl.Int64).alias("total_orders"),
            pl.col("customer_unique_id").drop_nulls().n_unique().cast(pl.Int64).alias("unique_customers"),
            pl.col("total_order_value").sum().round(2).alias("gmv"),
            pl.col("total_order_value").mean().round(2).alias("avg_order_value"),
            pl.col("total_freight").sum().round(2).alias("total_freight_revenue"),
            pl.col("review_score").mean().round(2).alias("avg_review_score"),
            pl.col("delivery_days").mean().round(1).alias("avg_delivery_days"),
            percentage(count_where(_is_late()), pl.len()).alias("late_delivery_pct"),
        ])
        .select([
            "order_year",
            "order_month",
            "month_start",
            "total_orders",
            "unique_customers",
            "gmv",
            "avg_order_value",
            "total_freight_revenue",
            "avg_review_score",
            "avg_delivery_days",
            "late_delivery_pct",
        ])
        .sort("month_start", nulls_last=True)
    )


def build_state_performance(
    orders_enriched: pl.DataFrame,
    delivered_status: str = "delivered",
    low_review_threshold: int = 2,
) -> pl.DataFrame:
    """Revenue, delivery and review quality per customer state"""
    low_review = pl.col("review_score") <= low_review_threshold

    return (
        _delivered(orders_enriched, delivered_status)
        .group_by("customer_state")
        .agg([
            pl.len().cast(pl.Int64).alias("total_orders"),
            pl.col("customer_unique_id").drop_nulls().n_unique().cast(pl.Int64).alias("unique_customers"),
            pl.col("total_order_value").sum().round(2).alias("total_revenue"),
            pl.col("total_order_value").mean().round(2).alias("avg_order_value"),
            pl.col("review_score").mean().round(2).alias("avg_review_score"),
            pl.col("delivery_days").mean().round(1).alias("avg_delivery_days"),
            percentage(count_where(_is_late()), pl.len()).alias("late_delivery_pct"),
            percentage(count_where(low_review), pl.len()).alias("low_review_pct"),
        ])
        .sort(["total_revenue", "customer_state"], descending=[True, False], nulls_last=True)
    )


def build_category_analysis(
    items: pl.DataFrame,
    products: pl.DataFrame,
    orders_enriched: pl.DataFrame,
    delivered_status: str = "delivered",
    min_orders: int = 10,
) -> pl.DataFrame:
    """Sales, breadth and quality per product category, for categories with enough orders"""
    delivered = _delivered(orders_enriched, delivered_status).select([
        "order_id",
        "review_score",
        "delivery_days",
    ])

    return (
        items.select(["order_id", "product_id", "seller_id", "price"])
        .join(products.select(["product_id", "product_category"]), on="product_id", how="inner")
        .join(delivered, on="order_id", how="inner")
        .group_by("product_category")
        .agg([
            pl.col("order_id").n_unique().cast(pl.Int64).alias("total_orders"),
            pl.col("price").sum().round(2).alias("total_revenue"),
            pl.col("price").mean().round(2).alias("avg_price"),
            pl.col("seller_id").drop_nulls().n_unique().cast(pl.Int64).alias("seller_count"),
            pl.col("product_id").n_unique().cast(pl.Int64).alias("product_count"),
            pl.col("review_score").mean().round(2).alias("avg_review_score"),
            pl.col("delivery_days").mean().round(1).alias("avg_delivery_days"),
        ])
        .filter(pl.col("total_orders") >= min_orders)
        .sort(["total_revenue", "product_category"], descending=[True, False])
    )


def build_seller_scorecard(seller_performance: pl.DataFrame) -> pl.DataFrame:
    """
    Percentile ranks and tier of every seller with at least one order.

    Revenue and review rank ascending; delivery days rank descending so the
    fastest sellers get the highest speed percentile.
    """
    return (
        seller_performance.filter(pl.col("total_orders") > 0)
        .with_columns([
            percent_rank("total_revenue").alias("revenue_percentile"),
            percent_rank("avg_review_score").alias("review_percentile"),
            percent_rank("avg_delivery_days", descending=True).alias("delivery_speed_percentile"),
            SELLER_TIER_RULES.to_expr(),
        ])
        .select([
            "seller_id",
            "seller_city",
            "seller_state",
            "total_orders",
            "total_revenue",
            "avg_review_score",
            "avg_delivery_days",
            "revenue_percentile",
            "review_percentile",
            "delivery_speed_percentile",
            "seller_tier",
        ])
        .sort(["total_revenue", "seller_id"], descending=[True, False])
    )


def build_customer_segments(
    customer_history: pl.DataFrame,
    recency_anchor: Optional[datetime],
) -> pl.DataFrame:
    """
    RFM quintiles and segment of every customer with orders.

    Recency is measured in days from recency_anchor (the dataset's latest
    purchase) back to the customer's last order. Quintiles are computed over
    the whole customer population; recency quintile 5 holds the most recent
    customers, frequency and monetary quintile 5 the highest values.

    Args:
        customer_history: One row per unique customer
        recency_anchor: Reference timestamp, computed once per run

    Returns:
        Customer segments keyed by customer_unique_id
    """
    customers = customer_history.filter(pl.col("lifetime_orders") > 0)
    if recency_anchor is None and customers.height:
        raise ValueError("recency_anchor is required to segment customers")

    anchor = pl.lit(recency_anchor, dtype=pl.Datetime("us"))
    customers = customers.with_columns(
        elapsed_days(anchor, pl.col("last_order_date")).alias("recency_days")
    )

    key = "customer_unique_id"
    recency = ntile_map(customers, key, "recency_days", RFM_BUCKETS, descending=True, alias="recency_quintile")
    frequency = ntile_map(customers, key, "lifetime_orders", RFM_BUCKETS, alias="frequency_quintile")
    monetary = ntile_map(customers, key, "lifetime_value", RFM_BUCKETS, alias="monetary_quintile")

    scored = (
        customers
        .join(recency, on=key, how="left")
        .join(frequency, on=key, how="left")
        .join(monetary, on=key, how="left")
    )

    return (
        scored.with_columns([
            pl.col("recency_days").round(0),
            CUSTOMER_SEGMENT_RULES.to_expr(),
        ])
        .select([
            "customer_unique_id",
            "lifetime_orders",
            "lifetime_value",
            "avg_order_value",
            "avg_review_score",
            "first_order_date",
            "last_order_date",
            "recency_days",
            "is_repeat_customer",
            "preferred_payment_method",
            "primary_state",
            "recency_quintile",
            "frequency_quintile",
            "monetary_quintile",
            "customer_segment",
        ])
        .sort(key)
    )


DAILY_REVENUE_SCHEMA = {
    "calendar_date": pl.Date,
    "orders": pl.Int64,
    "revenue": pl.Float64,
    "day_of_week": pl.Int8,
}


def build_daily_revenue(
    orders_enriched: pl.DataFrame,
    delivered_status: str = "delivered",
) -> pl.DataFrame:
    """Delivered orders and revenue for every day between the first and last order, zero-filled"""
    order_dates = orders_enriched["order_date"].drop_nulls()
    if order_dates.is_empty():
        return pl.DataFrame(schema=DAILY_REVENUE_SCHEMA)

    calendar = pl.DataFrame(
        {"calendar_date": list(days(order_dates.min(), order_dates.max()))},
        schema={"calendar_date": pl.Date},
    )
    daily = (
        _delivered(orders_enriched, delivered_status)
        .group_by("order_date")
        .agg([
            pl.len().cast(pl.Int64).alias("orders"),
            pl.col("total_order_value").sum().round(2).alias("revenue"),
        ])
    )

    return (
        calendar.join(daily, left_on="calendar_date", right_on="order_date", how="left")
        .with_columns([
            pl.col("orders").fill_null(0),
            pl.col("revenue").fill_null(0.0),
            pl.col("calendar_date").dt.weekday().cast(pl.Int8).alias("day_of_week"),
        ])
        .select(list(DAILY_REVENUE_SCHEMA))
        .sort("calendar_date")
    )


class MartBuilder:
    """
    Builds mart views from a snapshot of the intermediate layer.

    Example:
        builder = MartBuilder()
        views = builder.build_all(inputs)
        segments = builder.build_view("customer_segments", inputs)
    """

    def __init__(
        self,
        delivered_status: Optional[str] = None,
        min_category_orders: Optional[int] = None,
        low_review_threshold: Optional[int] = None,
    ):
        rules = get_settings().warehouse
        self.delivered_status = delivered_status or rules.delivered_status
        self.min_category_orders = (
            rules.min_category_orders if min_category_orders is None else min_category_orders
        )
        self.low_review_threshold = low_review_threshold or rules.low_review_threshold

        self._builders: Dict[str, Callable[[MartInputs], pl.DataFrame]] = {
            "monthly_revenue": lambda i: build_monthly_revenue(i.orders_enriched, self.delivered_status),
            "state_performance": lambda i: build_state_performance(
                i.orders_enriched, self.delivered_status, self.low_review_threshold
            ),
            "category_analysis": lambda i: build_category_analysis(
                i.items, i.products, i.orders_enriched, self.delivered_status, self.min_category_orders
            ),
            "seller_scorecard": lambda i: build_seller_scorecard(i.seller_performance),
            "customer_segments": lambda i: build_customer_segments(i.customer_history, i.recency_anchor),
            "daily_revenue": lambda i: build_daily_revenue(i.orders_enriched, self.delivered_status),
        }

    def build_view(self, name: str, inputs: MartInputs) -> pl.DataFrame:
        """Build a single view by name"""
        if name not in self._builders:
            raise ValueError(f"Unknown mart view: {name}. Known views: {sorted(self._builders)}")
        view = self._builders[name](inputs)
        logger.info("Built mart view", view=name, rows=view.height)
        return view

    def build_all(self, inputs: MartInputs) -> Dict[str, pl.DataFrame]:
        """Build every mart view"""
        return {name: self.build_view(name, inputs) for name in MART_VIEWS}

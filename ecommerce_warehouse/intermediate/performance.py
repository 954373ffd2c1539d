"""
Performance Aggregators

One row per seller, product and unique customer, summarizing revenue,
review and activity metrics from the enriched order fact.
"""

import polars as pl
import structlog

from ecommerce_warehouse.expressions import elapsed_days, mode_of

logger = structlog.get_logger(__name__)


def _item_facts(items: pl.DataFrame, orders_enriched: pl.DataFrame) -> pl.DataFrame:
    """Order items carrying the purchase time, review and delivery of their order"""
    return items.select([
        "order_id",
        "product_id",
        "seller_id",
        "price",
        "freight_value",
    ]).join(
        orders_enriched.select([
            "order_id",
            "order_purchase_timestamp",
            "review_score",
            "delivery_days",
        ]),
        on="order_id",
        how="left",
    )


def build_seller_performance(
    sellers: pl.DataFrame,
    items: pl.DataFrame,
    orders_enriched: pl.DataFrame,
) -> pl.DataFrame:
    """
    Aggregate sales per seller.

    Every seller in the dimension gets a row; sellers without sales carry
    zero counts and revenue and null averages. Review and delivery averages
    are taken over sold items.
    """
    facts = _item_facts(items, orders_enriched)

    performance = (
        sellers.select(["seller_id", "seller_zip_code_prefix", "seller_city", "seller_state"])
        .join(facts, on="seller_id", how="left")
        .group_by("seller_id", maintain_order=True)
        .agg([
            pl.col("seller_zip_code_prefix").first(),
            pl.col("seller_city").first(),
            pl.col("seller_state").first(),
            pl.col("order_id").drop_nulls().n_unique().cast(pl.Int64).alias("total_orders"),
            pl.col("order_id").count().cast(pl.Int64).alias("total_items_sold"),
            pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("unique_products_sold"),
            pl.col("price").sum().round(2).alias("total_revenue"),
            pl.col("price").mean().round(2).alias("avg_item_price"),
            pl.col("freight_value").sum().round(2).alias("total_freight_collected"),
            pl.col("review_score").mean().round(2).alias("avg_review_score"),
            pl.col("delivery_days").mean().round(1).alias("avg_delivery_days"),
            pl.col("order_purchase_timestamp").min().alias("first_order_date"),
            pl.col("order_purchase_timestamp").max().alias("last_order_date"),
        ])
        .with_columns(
            elapsed_days("last_order_date", "first_order_date").alias("active_days")
        )
    )

    logger.info(
        "Built seller performance",
        sellers=performance.height,
        without_sales=performance.filter(pl.col("total_orders") == 0).height,
    )
    return performance


def build_product_performance(
    products: pl.DataFrame,
    items: pl.DataFrame,
    orders_enriched: pl.DataFrame,
) -> pl.DataFrame:
    """Aggregate sales per product; unsold products keep zero counts"""
    facts = _item_facts(items, orders_enriched)

    performance = (
        products.select(["product_id", "product_category", "product_weight_g"])
        .join(facts, on="product_id", how="left")
        .group_by("product_id", maintain_order=True)
        .agg([
            pl.col("product_category").first(),
            pl.col("product_weight_g").first(),
            pl.col("order_id").drop_nulls().n_unique().cast(pl.Int64).alias("times_ordered"),
            pl.col("price").sum().round(2).alias("total_revenue"),
            pl.col("price").mean().round(2).alias("avg_selling_price"),
            pl.col("freight_value").sum().round(2).alias("total_freight"),
            pl.col("review_score").mean().round(2).alias("avg_review_score"),
            pl.col("order_purchase_timestamp").min().alias("first_sold_date"),
            pl.col("order_purchase_timestamp").max().alias("last_sold_date"),
        ])
    )

    logger.info("Built product performance", products=performance.height)
    return performance


def build_customer_history(
    orders_enriched: pl.DataFrame,
    payments: pl.DataFrame,
) -> pl.DataFrame:
    """
    Lifetime metrics per unique customer.

    Order metrics come from the enriched orders; the preferred payment
    method is the most used payment type over the customer's payment
    records. Customers without orders do not appear.
    """
    orders = orders_enriched.filter(pl.col("customer_unique_id").is_not_null())

    history = orders.group_by("customer_unique_id").agg([
        pl.col("order_id").n_unique().cast(pl.Int64).alias("lifetime_orders"),
        pl.col("total_order_value").sum().round(2).alias("lifetime_value"),
        pl.col("total_order_value").mean().round(2).alias("avg_order_value"),
        pl.col("review_score").mean().round(2).alias("avg_review_score"),
        pl.col("order_purchase_timestamp").min().alias("first_order_date"),
        pl.col("order_purchase_timestamp").max().alias("last_order_date"),
        mode_of("customer_state").alias("primary_state"),
    ]).with_columns(
        (pl.col("lifetime_orders") > 1).alias("is_repeat_customer")
    )

    preferred_payment = (
        payments.select(["order_id", "payment_type"])
        .join(orders.select(["order_id", "customer_unique_id"]), on="order_id", how="inner")
        .group_by("customer_unique_id")
        .agg(mode_of("payment_type").alias("preferred_payment_method"))
    )

    history = (
        history.join(preferred_payment, on="customer_unique_id", how="left")
        .select([
            "customer_unique_id",
            "lifetime_orders",
            "lifetime_value",
            "avg_order_value",
            "avg_review_score",
            "first_order_date",
            "last_order_date",
            "is_repeat_customer",
            "preferred_payment_method",
            "primary_state",
        ])
        .sort("customer_unique_id")
    )

    logger.info(
        "Built customer history",
        customers=history.height,
        repeat_customers=history.filter(pl.col("is_repeat_customer")).height,
    )
    return history

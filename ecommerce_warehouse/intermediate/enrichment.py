"""
Order Enrichment Module

Builds the enriched order fact: one row per order carrying customer
location, item and payment aggregates, the retained review score, calendar
parts and delivery performance.

Every join is a left join from the order side, so orders without items,
payments, review or a known customer still produce exactly one row.
"""

from enum import Enum

import polars as pl
import structlog

from ecommerce_warehouse.expressions import elapsed_days

logger = structlog.get_logger(__name__)


class DeliveryStatus(str, Enum):
    """Delivery performance of an order"""
    ON_TIME = "on_time"
    LATE = "late"
    NOT_DELIVERED = "not_delivered"


ENRICHED_ORDER_COLUMNS = [
    "order_id",
    "customer_id",
    "customer_unique_id",
    "customer_city",
    "customer_state",
    "order_status",
    # Timestamps
    "order_purchase_timestamp",
    "order_approved_at",
    "order_delivered_carrier_date",
    "order_delivered_customer_date",
    "order_estimated_delivery_date",
    # Date parts
    "order_date",
    "order_year",
    "order_month",
    "order_day_of_week",
    # Items
    "total_items",
    "total_products",
    "total_price",
    "total_freight",
    "total_order_value",
    # Payments
    "total_payment_value",
    "payment_methods",
    "max_installments",
    # Review
    "review_score",
    # Delivery
    "delivery_days",
    "delivery_vs_estimate_days",
    "delivery_status",
]


class OrderEnricher:
    """
    Assembles the enriched order fact table.

    Example:
        enricher = OrderEnricher()
        fact = enricher.build(orders, customers, items, payments, reviews)
    """

    def aggregate_items(self, items: pl.DataFrame) -> pl.DataFrame:
        """Item count, distinct products and money totals per order"""
        return items.group_by("order_id").agg([
            pl.len().cast(pl.Int64).alias("total_items"),
            pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("total_products"),
            pl.col("price").sum().round(2).alias("total_price"),
            pl.col("freight_value").sum().round(2).alias("total_freight"),
        ])

    def aggregate_payments(self, payments: pl.DataFrame) -> pl.DataFrame:
        """Amount paid, distinct sorted methods and max installments per order"""
        return payments.group_by("order_id").agg([
            pl.col("payment_value").sum().round(2).alias("total_payment_value"),
            pl.col("payment_type").drop_nulls().unique().sort().alias("payment_methods"),
            pl.col("payment_installments").max().alias("max_installments"),
        ])

    def add_date_parts(self, df: pl.DataFrame) -> pl.DataFrame:
        """Calendar parts of the purchase timestamp"""
        purchased = pl.col("order_purchase_timestamp")
        return df.with_columns([
            purchased.dt.date().alias("order_date"),
            purchased.dt.year().cast(pl.Int32).alias("order_year"),
            purchased.dt.month().cast(pl.Int32).alias("order_month"),
            purchased.dt.strftime("%A").alias("order_day_of_week"),
        ])

    def classify_delivery(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Delivery metrics and three-way delivery status.

        An order with a delivery date is on time when it arrived no later
        than the estimate and late otherwise, including when no estimate
        exists. Without a delivery date it is not delivered.
        """
        delivered = pl.col("order_delivered_customer_date")
        estimated = pl.col("order_estimated_delivery_date")

        return df.with_columns([
            elapsed_days(delivered, pl.col("order_purchase_timestamp")).alias("delivery_days"),
            elapsed_days(estimated, delivered).alias("delivery_vs_estimate_days"),
            pl.when(delivered.is_null())
            .then(pl.lit(DeliveryStatus.NOT_DELIVERED.value))
            .when(estimated.is_not_null() & (delivered <= estimated))
            .then(pl.lit(DeliveryStatus.ON_TIME.value))
            .otherwise(pl.lit(DeliveryStatus.LATE.value))
            .alias("delivery_status"),
        ])

    def build(
        self,
        orders: pl.DataFrame,
        customers: pl.DataFrame,
        items: pl.DataFrame,
        payments: pl.DataFrame,
        reviews: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Join orders with customers, item/payment aggregates and reviews.

        Args:
            orders: Staged orders, unique by order_id
            customers: Staged customers, unique by customer_id
            items: Staged order items
            payments: Staged order payments
            reviews: Staged reviews, one per order

        Returns:
            Enriched orders, one row per input order
        """
        customer_attrs = customers.select([
            "customer_id",
            "customer_unique_id",
            "customer_city",
            "customer_state",
        ])

        fact = (
            orders
            .join(customer_attrs, on="customer_id", how="left")
            .join(self.aggregate_items(items), on="order_id", how="left")
            .join(self.aggregate_payments(payments), on="order_id", how="left")
            .join(reviews.select(["order_id", "review_score"]), on="order_id", how="left")
        )

        fact = fact.with_columns(
            (pl.col("total_price") + pl.col("total_freight")).round(2).alias("total_order_value")
        )
        fact = self.add_date_parts(fact)
        fact = self.classify_delivery(fact)

        fact = fact.select(ENRICHED_ORDER_COLUMNS)

        logger.info(
            "Built enriched orders",
            orders=orders.height,
            rows=fact.height,
            without_items=fact["total_items"].null_count(),
            without_payments=fact["total_payment_value"].null_count(),
            without_review=fact["review_score"].null_count(),
        )
        return fact


def build_orders_enriched(
    orders: pl.DataFrame,
    customers: pl.DataFrame,
    items: pl.DataFrame,
    payments: pl.DataFrame,
    reviews: pl.DataFrame,
) -> pl.DataFrame:
    """
    Convenience function to build the enriched order fact.

    Returns:
        Enriched orders DataFrame
    """
    return OrderEnricher().build(orders, customers, items, payments, reviews)

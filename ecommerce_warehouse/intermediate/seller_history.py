"""
Seller Status History (SCD Type 2)

Derives validity intervals of seller activity status from monthly activity.

A seller is active in a calendar month iff at least one of its order items
belongs to an order purchased in that month. The observation window is
every calendar month present anywhere in the order set, shared by all
sellers; months in which no order at all was purchased are not observed.
Consecutive observed months with the same status collapse into one
interval; the last interval of every seller is current and open-ended.

The window is treated as closed: a seller's last observed status persists
indefinitely, since deregistration cannot be inferred from order presence.
"""

from datetime import date
from enum import Enum
from typing import List

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

OPEN_ENDED = date(9999, 12, 31)


class SellerStatus(str, Enum):
    """Monthly seller activity state"""
    ACTIVE = "active"
    INACTIVE = "inactive"


HISTORY_SCHEMA = {
    "scd_id": pl.Int64,
    "seller_id": pl.Utf8,
    "seller_status": pl.Utf8,
    "valid_from": pl.Date,
    "valid_to": pl.Date,
    "is_current": pl.Boolean,
    "orders_at_change": pl.Int64,
}


def _purchase_month() -> pl.Expr:
    return pl.col("order_purchase_timestamp").dt.truncate("1mo").dt.date().alias("month_start")


def observation_window(orders_enriched: pl.DataFrame) -> List[date]:
    """Distinct purchase months of the order set, ascending; empty without orders"""
    return (
        orders_enriched.select(_purchase_month())
        .drop_nulls()
        .unique()
        .sort("month_start")["month_start"]
        .to_list()
    )


class SellerHistoryBuilder:
    """
    Builds SCD Type 2 seller status intervals.

    Steps:
    1. Monthly activity for every (seller, month) of the window
    2. Change points where the status differs from the previous observed month
    3. Intervals between consecutive change points

    Example:
        builder = SellerHistoryBuilder()
        history = builder.build(sellers, items, orders_enriched)
    """

    def __init__(self, open_ended: date = OPEN_ENDED):
        self.open_ended = open_ended

    def monthly_activity(
        self,
        sellers: pl.DataFrame,
        items: pl.DataFrame,
        orders_enriched: pl.DataFrame,
        window: List[date],
    ) -> pl.DataFrame:
        """Status and distinct order count for every seller and month"""
        calendar = pl.DataFrame({"month_start": window}, schema={"month_start": pl.Date})

        order_months = orders_enriched.select([
            "order_id",
            _purchase_month(),
        ]).drop_nulls("month_start")

        monthly_orders = (
            items.select(["seller_id", "order_id"])
            .drop_nulls()
            .join(order_months, on="order_id", how="inner")
            .group_by(["seller_id", "month_start"])
            .agg(pl.col("order_id").n_unique().cast(pl.Int64).alias("orders_in_month"))
        )

        return (
            sellers.select("seller_id")
            .unique(maintain_order=True)
            .join(calendar, how="cross")
            .join(monthly_orders, on=["seller_id", "month_start"], how="left")
            .with_columns(pl.col("orders_in_month").fill_null(0))
            .with_columns(
                pl.when(pl.col("orders_in_month") > 0)
                .then(pl.lit(SellerStatus.ACTIVE.value))
                .otherwise(pl.lit(SellerStatus.INACTIVE.value))
                .alias("seller_status")
            )
            .sort(["seller_id", "month_start"])
        )

    def change_points(self, activity: pl.DataFrame) -> pl.DataFrame:
        """Months whose status differs from the previous observed month; the first month always counts"""
        previous = pl.col("seller_status").shift(1).over("seller_id")
        return (
            activity.sort(["seller_id", "month_start"])
            .with_columns(previous.alias("previous_status"))
            .filter(
                pl.col("previous_status").is_null()
                | (pl.col("seller_status") != pl.col("previous_status"))
            )
            .select([
                "seller_id",
                pl.col("month_start").alias("valid_from"),
                "seller_status",
                pl.col("orders_in_month").alias("orders_at_change"),
            ])
        )

    def intervals(self, change_points: pl.DataFrame) -> pl.DataFrame:
        """Close every interval the day before the next change point"""
        next_from = pl.col("next_valid_from")
        return (
            change_points.sort(["seller_id", "valid_from"])
            .with_columns(pl.col("valid_from").shift(-1).over("seller_id").alias("next_valid_from"))
            .with_columns([
                pl.when(next_from.is_null())
                .then(pl.lit(self.open_ended))
                .otherwise(next_from.dt.offset_by("-1d"))
                .alias("valid_to"),
                next_from.is_null().alias("is_current"),
            ])
            .with_row_index("scd_id", offset=1)
            .with_columns(pl.col("scd_id").cast(pl.Int64))
            .select(list(HISTORY_SCHEMA))
        )

    def build(
        self,
        sellers: pl.DataFrame,
        items: pl.DataFrame,
        orders_enriched: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Derive the full status history of every seller in the dimension.

        Args:
            sellers: Seller dimension
            items: Order items linking sellers to orders
            orders_enriched: Enriched orders providing purchase timestamps

        Returns:
            Intervals keyed by (seller_id, valid_from) with surrogate scd_id
        """
        window = observation_window(orders_enriched)
        if not window:
            logger.warning("No purchase timestamps; seller history is empty")
            return pl.DataFrame(schema=HISTORY_SCHEMA)

        activity = self.monthly_activity(sellers, items, orders_enriched, window)
        history = self.intervals(self.change_points(activity))

        logger.info(
            "Built seller status history",
            sellers=sellers.height,
            months=len(window),
            window_start=str(window[0]),
            window_end=str(window[-1]),
            intervals=history.height,
        )
        return history


def build_seller_status_history(
    sellers: pl.DataFrame,
    items: pl.DataFrame,
    orders_enriched: pl.DataFrame,
) -> pl.DataFrame:
    """Convenience function to build the seller status history"""
    return SellerHistoryBuilder().build(sellers, items, orders_enriched)


def seller_status_as_of(history: pl.DataFrame, as_of: date) -> pl.DataFrame:
    """
    Status of every seller on a given day.

    Sellers whose history does not cover the day are absent.
    """
    return (
        history.filter((pl.col("valid_from") <= as_of) & (pl.col("valid_to") >= as_of))
        .select(["seller_id", "seller_status", "valid_from", "valid_to", "is_current"])
        .sort("seller_id")
    )

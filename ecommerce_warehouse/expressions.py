"""
Shared Polars Expressions

Null-safe arithmetic and deterministic aggregates reused across layers.
"""

from typing import Union

import polars as pl

MICROSECONDS_PER_DAY = 86_400_000_000


def safe_divide(numerator: pl.Expr, denominator: pl.Expr) -> pl.Expr:
    """Division that yields null for a zero or null denominator"""
    return (
        pl.when(denominator.is_null() | (denominator == 0))
        .then(None)
        .otherwise(numerator / denominator)
    )


def percentage(part: pl.Expr, whole: pl.Expr, decimals: int = 1) -> pl.Expr:
    """100 * part / whole rounded, null when whole is zero"""
    return safe_divide(part.cast(pl.Float64) * 100.0, whole.cast(pl.Float64)).round(decimals)


def elapsed_days(end: Union[str, pl.Expr], start: Union[str, pl.Expr]) -> pl.Expr:
    """Exact elapsed time between two datetimes in fractional days"""
    end = pl.col(end) if isinstance(end, str) else end
    start = pl.col(start) if isinstance(start, str) else start
    return (end - start).dt.total_microseconds() / MICROSECONDS_PER_DAY


def mode_of(column: str) -> pl.Expr:
    """
    Most frequent non-null value of a column inside an aggregation.

    Ties resolve to the smallest value so repeated runs agree.
    """
    return pl.col(column).drop_nulls().mode().sort().first()


def count_where(condition: pl.Expr) -> pl.Expr:
    """Number of rows where condition is true"""
    return condition.fill_null(False).cast(pl.UInt32).sum()

"""
Population Ranking

Rank-based computations scoped to a whole population. Both need every row
before any single row can be placed, so bins are computed in a first pass
into a key -> bin mapping that callers join back onto their rows.
"""

import polars as pl


def ntile_map(
    df: pl.DataFrame,
    key: str,
    value: str,
    buckets: int = 5,
    descending: bool = False,
    alias: str = "ntile",
) -> pl.DataFrame:
    """
    Split a population into equal-population buckets numbered 1..buckets.

    Rows are ordered by value (ties broken by key) and dealt into buckets
    whose sizes differ by at most one, larger buckets first. Missing values
    land in the lowest buckets.

    Args:
        df: Population, one row per key
        key: Unique key column
        value: Column to rank by
        buckets: Number of buckets
        descending: Rank high values into low buckets
        alias: Name of the bucket column

    Returns:
        DataFrame of key and bucket number
    """
    if buckets < 1:
        raise ValueError("buckets must be positive")

    size, remainder = divmod(df.height, buckets)
    large_rows = remainder * (size + 1)

    position = pl.int_range(0, pl.len(), dtype=pl.Int64)
    bucket = (
        pl.when(position < large_rows)
        .then(position // (size + 1) + 1)
        .otherwise(remainder + (position - large_rows) // max(size, 1) + 1)
    )

    return (
        df.select([key, value])
        .sort([value, key], descending=[descending, False], nulls_last=False)
        .select([pl.col(key), bucket.cast(pl.Int64).alias(alias)])
    )


def percent_rank(column: str, descending: bool = False, decimals: int = 3) -> pl.Expr:
    """
    Relative rank (rank - 1) / (rows - 1) of each row, 0.0 for a single row.

    Peers share the lowest rank. Missing values form one peer group placed
    after all values when ascending and before them when descending.
    """
    value = pl.col(column)
    rank = value.rank("min", descending=descending).cast(pl.Float64)
    rows = pl.len().cast(pl.Float64)

    if descending:
        rank = pl.when(value.is_null()).then(1.0).otherwise(rank + value.null_count())
    else:
        rank = pl.when(value.is_null()).then(value.count() + 1.0).otherwise(rank)

    return (
        pl.when(rows > 1)
        .then((rank - 1.0) / (rows - 1.0))
        .otherwise(0.0)
        .round(decimals)
        .alias(column)
    )

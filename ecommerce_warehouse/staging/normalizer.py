"""
Typed Record Normalizer

Staging transformations for the raw marketplace streams.
Handles:
- Text trimming and blank-to-null conversion
- Timestamp and numeric type coercion
- City/state format normalization
- Deduplication of one-to-one relations
- Category code translation

Malformed values are reported per record and nulled; they never abort the
batch. Rows without a usable primary key are dropped and reported.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import polars as pl
import structlog

from ecommerce_warehouse.exceptions import SchemaError
from ecommerce_warehouse.expressions import mode_of
from ecommerce_warehouse.staging.schemas import (
    SCHEMAS,
    FieldType,
    StreamName,
    StreamSchema,
)

logger = structlog.get_logger(__name__)

DATETIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S%.f",
    "%Y-%m-%d %H:%M",
]
DATE_FORMAT = "%Y-%m-%d"
CURRENCY_SYMBOLS = r"R\$|[$€£¥,]"
UNKNOWN_CATEGORY = "unknown"
REVIEW_SCORE_RANGE = (1, 5)


@dataclass
class RecordIssue:
    """A single malformed or unidentifiable input record"""
    source: str
    reason: str
    record_key: Optional[str] = None
    column: Optional[str] = None
    raw_value: Optional[str] = None


@dataclass
class NormalizedStream:
    """Typed output of one staging table"""
    name: str
    data: pl.DataFrame
    input_rows: int
    duplicates_removed: int = 0
    issues: List[RecordIssue] = field(default_factory=list)

    @property
    def output_rows(self) -> int:
        return self.data.height


def _parse_timestamp(column: str) -> pl.Expr:
    text = pl.col(column)
    candidates = [
        text.str.strptime(pl.Datetime("us"), fmt, strict=False)
        for fmt in DATETIME_FORMATS
    ]
    candidates.append(
        text.str.strptime(pl.Date, DATE_FORMAT, strict=False).cast(pl.Datetime("us"))
    )
    return pl.coalesce(candidates).alias(column)


def _parse_float(column: str, strip_currency: bool = False) -> pl.Expr:
    text = pl.col(column)
    if strip_currency:
        text = text.str.replace_all(CURRENCY_SYMBOLS, "").str.strip_chars()
    value = text.cast(pl.Float64, strict=False)
    return pl.when(value.is_finite()).then(value).otherwise(None)


def _parse_integer(column: str) -> pl.Expr:
    # Accepts "3" and "3.0", rejects "3.5"
    value = _parse_float(column)
    return (
        pl.when(value == value.floor())
        .then(value.cast(pl.Int64, strict=False))
        .otherwise(None)
        .alias(column)
    )


class RecordNormalizer:
    """
    Casts raw text streams into typed, deduplicated staging tables.

    Example:
        normalizer = RecordNormalizer()
        staged = normalizer.normalize_all(raw_streams)
        orders = staged["orders"].data
    """

    def __init__(self, schemas: Optional[Mapping[StreamName, StreamSchema]] = None):
        self.schemas = dict(schemas or SCHEMAS)

    def _prepare_columns(self, df: pl.DataFrame, schema: StreamSchema) -> pl.DataFrame:
        """Select the schema's columns as text, accepting corrected spellings"""
        for raw_name, fixed_name in schema.renames.items():
            if raw_name not in df.columns and fixed_name in df.columns:
                df = df.rename({fixed_name: raw_name})

        missing = [c for c in schema.columns if c not in df.columns]
        if missing:
            raise SchemaError(schema.name.value, missing)

        return df.select([pl.col(c).cast(pl.Utf8) for c in schema.columns])

    def _trim_strings(self, df: pl.DataFrame) -> pl.DataFrame:
        """Trim whitespace and turn blank strings into nulls"""
        exprs = []
        for col in df.columns:
            trimmed = pl.col(col).str.strip_chars()
            exprs.append(
                pl.when(trimmed.str.len_chars() > 0).then(trimmed).otherwise(None).alias(col)
            )
        return df.with_columns(exprs)

    def _cast_types(self, df: pl.DataFrame, schema: StreamSchema) -> pl.DataFrame:
        """Apply the staging type of every field"""
        exprs = []
        for col, ftype in schema.fields.items():
            if ftype == FieldType.TIMESTAMP:
                exprs.append(_parse_timestamp(col))
            elif ftype == FieldType.INTEGER:
                exprs.append(_parse_integer(col))
            elif ftype == FieldType.DECIMAL:
                exprs.append(_parse_float(col).alias(col))
            elif ftype == FieldType.CURRENCY:
                exprs.append(_parse_float(col, strip_currency=True).round(2).alias(col))
            elif ftype == FieldType.CITY:
                exprs.append(pl.col(col).str.to_titlecase().alias(col))
            elif ftype == FieldType.STATE:
                exprs.append(pl.col(col).str.to_uppercase().alias(col))
        return df.with_columns(exprs) if exprs else df

    def _key_expr(self, schema: StreamSchema) -> pl.Expr:
        return pl.concat_str(
            [pl.col(k).cast(pl.Utf8) for k in schema.primary_key],
            separator="|",
        ).alias("record_key")

    def _collect_issues(
        self,
        before: pl.DataFrame,
        after: pl.DataFrame,
        schema: StreamSchema,
        reason: str = "unparseable_value",
    ) -> List[RecordIssue]:
        """Report fields that held text but could not be typed"""
        issues = []
        typed_columns = schema.fields_of(
            FieldType.TIMESTAMP, FieldType.INTEGER, FieldType.DECIMAL, FieldType.CURRENCY
        )
        for column in typed_columns:
            failed = before[column].is_not_null() & after[column].is_null()
            if not failed.any():
                continue
            rows = before.filter(failed).select(
                self._key_expr(schema),
                pl.col(column).alias("raw_value"),
            )
            issues.extend(
                RecordIssue(
                    source=schema.name.value,
                    reason=reason,
                    record_key=row["record_key"],
                    column=column,
                    raw_value=row["raw_value"],
                )
                for row in rows.iter_rows(named=True)
            )
        return issues

    def _drop_missing_keys(
        self,
        df: pl.DataFrame,
        schema: StreamSchema,
        issues: List[RecordIssue],
    ) -> pl.DataFrame:
        """Drop rows whose primary key cannot be identified"""
        missing = pl.any_horizontal([pl.col(k).is_null() for k in schema.primary_key])
        dropped = df.filter(missing)
        if dropped.height:
            issues.extend(
                RecordIssue(
                    source=schema.name.value,
                    reason="missing_primary_key",
                    record_key=row["record_key"],
                )
                for row in dropped.select(self._key_expr(schema)).iter_rows(named=True)
            )
        return df.filter(~missing)

    def _remove_duplicates(self, df: pl.DataFrame, subset: List[str]) -> pl.DataFrame:
        """Keep the first row per key, preserving input order"""
        return df.unique(subset=subset, keep="first", maintain_order=True)

    def _log_result(self, result: NormalizedStream) -> None:
        logger.info(
            "Normalized stream",
            stream=result.name,
            input_rows=result.input_rows,
            output_rows=result.output_rows,
            duplicates_removed=result.duplicates_removed,
            issues=len(result.issues),
        )
        if result.issues:
            logger.warning(
                "Malformed records in stream",
                stream=result.name,
                count=len(result.issues),
                sample=[issue.__dict__ for issue in result.issues[:5]],
            )

    def _type_stream(
        self,
        raw: pl.DataFrame,
        schema: StreamSchema,
    ) -> tuple:
        """Shared first pass: columns, trimming, typing, key checks"""
        text = self._trim_strings(self._prepare_columns(raw, schema))
        typed = self._cast_types(text, schema)
        issues = self._collect_issues(text, typed, schema)
        typed = self._drop_missing_keys(typed, schema, issues)
        return typed, issues

    def normalize(self, name: StreamName, raw: pl.DataFrame) -> NormalizedStream:
        """Type and deduplicate a stream keyed by its primary key"""
        schema = self.schemas[name]
        typed, issues = self._type_stream(raw, schema)

        deduped = self._remove_duplicates(typed, list(schema.primary_key))
        if schema.renames:
            deduped = deduped.rename(schema.renames)

        result = NormalizedStream(
            name=name.value,
            data=deduped,
            input_rows=raw.height,
            duplicates_removed=typed.height - deduped.height,
            issues=issues,
        )
        self._log_result(result)
        return result

    def normalize_reviews(self, raw: pl.DataFrame) -> NormalizedStream:
        """
        Type reviews and keep one review per order.

        The review with the latest creation date wins; ties keep the earlier
        input row.
        """
        schema = self.schemas[StreamName.ORDER_REVIEWS]
        typed, issues = self._type_stream(raw, schema)

        low, high = REVIEW_SCORE_RANGE
        out_of_range = pl.col("review_score").is_not_null() & ~pl.col("review_score").is_between(low, high)
        issues.extend(
            RecordIssue(
                source=schema.name.value,
                reason="score_out_of_range",
                record_key=row["order_id"],
                column="review_score",
                raw_value=str(row["review_score"]),
            )
            for row in typed.filter(out_of_range).select("order_id", "review_score").iter_rows(named=True)
        )
        typed = typed.with_columns(
            pl.when(out_of_range).then(None).otherwise(pl.col("review_score")).alias("review_score")
        )

        latest = typed.sort(
            "review_creation_date",
            descending=True,
            nulls_last=True,
            maintain_order=True,
        )
        deduped = self._remove_duplicates(latest, ["order_id"])

        result = NormalizedStream(
            name=StreamName.ORDER_REVIEWS.value,
            data=deduped,
            input_rows=raw.height,
            duplicates_removed=typed.height - deduped.height,
            issues=issues,
        )
        self._log_result(result)
        return result

    def normalize_geolocation(self, raw: pl.DataFrame) -> NormalizedStream:
        """Collapse coordinate samples into one row per zip code prefix"""
        schema = self.schemas[StreamName.GEOLOCATION]
        typed, issues = self._type_stream(raw, schema)

        collapsed = (
            typed.group_by("geolocation_zip_code_prefix", maintain_order=True)
            .agg([
                pl.col("geolocation_lat").mean().round(6).alias("latitude"),
                pl.col("geolocation_lng").mean().round(6).alias("longitude"),
                mode_of("geolocation_city").alias("city"),
                mode_of("geolocation_state").alias("state"),
            ])
            .rename({"geolocation_zip_code_prefix": "zip_code_prefix"})
            .sort("zip_code_prefix")
        )

        result = NormalizedStream(
            name=StreamName.GEOLOCATION.value,
            data=collapsed,
            input_rows=raw.height,
            duplicates_removed=typed.height - collapsed.height,
            issues=issues,
        )
        self._log_result(result)
        return result

    def normalize_products(
        self,
        raw_products: pl.DataFrame,
        raw_translation: Optional[pl.DataFrame] = None,
    ) -> NormalizedStream:
        """
        Type products and translate category codes.

        Unmapped codes keep the raw code; products without a code get
        "unknown".
        """
        products = self.normalize(StreamName.PRODUCTS, raw_products)
        data = products.data

        if raw_translation is not None:
            translation = self.normalize(StreamName.CATEGORY_TRANSLATION, raw_translation).data
            data = data.join(translation, on="product_category_name", how="left")
        else:
            data = data.with_columns(pl.lit(None, dtype=pl.Utf8).alias("product_category_name_english"))

        data = data.with_columns(
            pl.coalesce(
                pl.col("product_category_name_english"),
                pl.col("product_category_name"),
                pl.lit(UNKNOWN_CATEGORY),
            ).alias("product_category")
        ).select([
            "product_id",
            "product_category",
            "product_name_length",
            "product_description_length",
            "product_photos_qty",
            "product_weight_g",
            "product_length_cm",
            "product_height_cm",
            "product_width_cm",
        ])

        products.data = data
        return products

    def normalize_all(self, raw: Mapping[str, pl.DataFrame]) -> Dict[str, NormalizedStream]:
        """
        Normalize every raw stream into its staging table.

        Args:
            raw: Raw text DataFrames keyed by stream name

        Returns:
            Staging results keyed by table name
        """
        def stream(name: StreamName) -> pl.DataFrame:
            if name.value not in raw:
                raise SchemaError(name.value, self.schemas[name].columns)
            return raw[name.value]

        results = {}
        for name in (
            StreamName.CUSTOMERS,
            StreamName.SELLERS,
            StreamName.ORDERS,
            StreamName.ORDER_ITEMS,
            StreamName.ORDER_PAYMENTS,
        ):
            results[name.value] = self.normalize(name, stream(name))

        results[StreamName.ORDER_REVIEWS.value] = self.normalize_reviews(stream(StreamName.ORDER_REVIEWS))
        results[StreamName.PRODUCTS.value] = self.normalize_products(
            stream(StreamName.PRODUCTS),
            stream(StreamName.CATEGORY_TRANSLATION),
        )
        results[StreamName.GEOLOCATION.value] = self.normalize_geolocation(stream(StreamName.GEOLOCATION))

        return results

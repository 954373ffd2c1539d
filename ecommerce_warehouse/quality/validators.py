"""
Data Validation Module

Rule-based layer invariant checks run before a layer is published.

Features:
- Null and uniqueness checks over one or more key columns
- Range and allowed-value checks
- Referential integrity checks
- Custom checks for cross-row invariants
- Pre-built suites for the staging, intermediate and mart layers
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

from ecommerce_warehouse.intermediate.enrichment import DeliveryStatus
from ecommerce_warehouse.intermediate.seller_history import OPEN_ENDED, SellerStatus
from ecommerce_warehouse.staging.schemas import ORDER_STATUSES, SCHEMAS, StreamName

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks the layer
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks with ERROR severity"""
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]


def _as_columns(columns: Union[str, Sequence[str]]) -> List[str]:
    return [columns] if isinstance(columns, str) else list(columns)


def _missing_check(name: str, columns: List[str], df: pl.DataFrame, severity: ValidationSeverity) -> Optional[ValidationCheck]:
    missing = [c for c in columns if c not in df.columns]
    if not missing:
        return None
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column(s) not found: {', '.join(missing)}",
    )


class DataValidator:
    """
    Layer invariant validator with a fluent check builder.

    Example:
        validator = DataValidator("order_items")
        validator.add_unique_check(["order_id", "order_item_id"])
        validator.add_range_check("price", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, name: str = "dataset", strict_mode: bool = False):
        self.name = name
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            missing = _missing_check(name, [column], df, severity)
            if missing:
                return missing

            null_count = df[column].null_count()
            total = df.height
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that a column, or a combination of columns, is a unique key"""
        key = _as_columns(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{'_'.join(key)}"
            missing = _missing_check(name, key, df, severity)
            if missing:
                return missing

            total = df.height
            unique_count = df.select(key).n_unique() if total else 0
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Key ({', '.join(key)}) has {duplicate_count} duplicate rows" if not passed else f"Key ({', '.join(key)}) is unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range; nulls are ignored"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            missing = _missing_check(name, [column], df, severity)
            if missing:
                return missing

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(name=name, passed=True, severity=severity, message="No range specified")

            combined = pl.any_horizontal(conditions)
            out_of_range = df.filter(combined).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for positive values"""
        min_val = 0 if allow_zero else 0.0001
        return self.add_range_check(column, min_value=min_val, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            missing = _missing_check(name, [column], df, severity)
            if missing:
                return missing

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {e}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value exists in a reference column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            missing = _missing_check(name, [column], df, severity)
            if missing:
                return missing

            orphans = df.filter(
                ~pl.col(column).is_in(reference_df[reference_column].implode()) & pl.col(column).is_not_null()
            ).height
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = _utcnow()
        results = [check_func(df) for check_func in self._checks]

        for result in results:
            if not result.passed:
                logger.warning(
                    "Validation check failed",
                    dataset=self.name,
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            "Validation complete",
            dataset=self.name,
            status=status.value,
            rows=df.height,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=_utcnow(),
        )


def create_key_validator(name: str, key: Union[str, Sequence[str]]) -> DataValidator:
    """Validator requiring a non-null unique key"""
    validator = DataValidator(name)
    for column in _as_columns(key):
        validator.add_not_null_check(column)
    return validator.add_unique_check(key)


STAGED_TABLE_STREAMS = {
    "customers": StreamName.CUSTOMERS,
    "sellers": StreamName.SELLERS,
    "orders": StreamName.ORDERS,
    "order_items": StreamName.ORDER_ITEMS,
    "order_payments": StreamName.ORDER_PAYMENTS,
    "order_reviews": StreamName.ORDER_REVIEWS,
}


def create_staging_validators() -> Dict[str, DataValidator]:
    """Validators for every staged table, keyed by table name"""
    validators = {
        table: create_key_validator(table, SCHEMAS[stream].primary_key)
        for table, stream in STAGED_TABLE_STREAMS.items()
    }
    validators["products"] = create_key_validator("products", "product_id").add_not_null_check("product_category")
    validators["geolocation"] = create_key_validator("geolocation", "zip_code_prefix")

    validators["orders"].add_enum_check("order_status", ORDER_STATUSES, severity=ValidationSeverity.WARNING)
    validators["order_items"].add_positive_check("price").add_positive_check("freight_value")
    validators["order_payments"].add_positive_check("payment_value")
    validators["order_reviews"].add_range_check("review_score", min_value=1, max_value=5)
    return validators


def create_enriched_orders_validator(expected_orders: Optional[int] = None) -> DataValidator:
    """Enriched orders: one row per order and a valid delivery status"""
    validator = (
        create_key_validator("orders_enriched", "order_id")
        .add_not_null_check("delivery_status")
        .add_enum_check("delivery_status", [status.value for status in DeliveryStatus])
        .add_range_check("review_score", min_value=1, max_value=5)
    )
    if expected_orders is not None:
        validator.add_custom_check(
            "one_row_per_order",
            lambda df: df.height == expected_orders,
            f"Expected exactly {expected_orders} enriched orders",
        )
    return validator


def _current_per_seller_violations(df: pl.DataFrame) -> int:
    return (
        df.group_by("seller_id")
        .agg(pl.col("is_current").cast(pl.Int64).sum().alias("current_rows"))
        .filter(pl.col("current_rows") != 1)
        .height
    )


def _interval_gaps(df: pl.DataFrame) -> int:
    return (
        df.sort(["seller_id", "valid_from"])
        .with_columns(pl.col("valid_from").shift(-1).over("seller_id").alias("next_valid_from"))
        .filter(
            pl.col("next_valid_from").is_not_null()
            & (pl.col("valid_to").dt.offset_by("1d") != pl.col("next_valid_from"))
        )
        .height
    )


def create_seller_history_validator() -> DataValidator:
    """
    SCD Type 2 invariants of the seller status history.

    Intervals of a seller are contiguous and non-overlapping, and exactly
    one interval per seller is current and open-ended.
    """
    return (
        create_key_validator("seller_status_history", ["seller_id", "valid_from"])
        .add_unique_check("scd_id")
        .add_enum_check("seller_status", [status.value for status in SellerStatus])
        .add_custom_check(
            "valid_interval_bounds",
            lambda df: df.filter(pl.col("valid_to") < pl.col("valid_from")).height == 0,
            "Intervals end before they start",
        )
        .add_custom_check(
            "contiguous_intervals",
            lambda df: _interval_gaps(df) == 0,
            "Seller intervals have gaps or overlaps",
        )
        .add_custom_check(
            "one_current_per_seller",
            lambda df: _current_per_seller_violations(df) == 0,
            "Sellers without exactly one current interval",
        )
        .add_custom_check(
            "current_is_open_ended",
            lambda df: df.filter(pl.col("is_current") != (pl.col("valid_to") == OPEN_ENDED)).height == 0,
            "Current flag disagrees with the open-ended sentinel",
        )
    )


def create_intermediate_validators(expected_orders: Optional[int] = None) -> Dict[str, DataValidator]:
    """Validators for every intermediate table"""
    return {
        "orders_enriched": create_enriched_orders_validator(expected_orders),
        "seller_performance": create_key_validator("seller_performance", "seller_id"),
        "product_performance": create_key_validator("product_performance", "product_id"),
        "customer_history": create_key_validator("customer_history", "customer_unique_id"),
        "seller_status_history": create_seller_history_validator(),
    }


def create_mart_validator(view: str, key: Optional[Sequence[str]]) -> DataValidator:
    """Mart view key uniqueness; unkeyed views get no checks"""
    validator = DataValidator(view)
    if key:
        validator.add_unique_check(list(key))
    return validator

"""
Unit Tests - Data Quality
"""
from datetime import date

import polars as pl
import pytest

from ecommerce_warehouse.intermediate import OPEN_ENDED, build_seller_status_history
from ecommerce_warehouse.quality import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_intermediate_validators,
    create_mart_validator,
    create_seller_history_validator,
    create_staging_validators,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        df = pl.DataFrame({"id": [1, 2, 3]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        df = pl.DataFrame({"id": [1, None, 3]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_unique_check_single_column(self):
        df = pl.DataFrame({"id": [1, 2, 2]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_unique_check_composite_key(self):
        df = pl.DataFrame({"order_id": ["a", "a", "b"], "item": [1, 2, 1]})

        passing = DataValidator().add_unique_check(["order_id", "item"]).validate(df)
        failing = DataValidator().add_unique_check("order_id").validate(df)

        assert passing.status == ValidationStatus.PASSED
        assert passing.checks[0].name == "unique_order_id_item"
        assert failing.status == ValidationStatus.FAILED

    def test_unique_check_empty_frame(self):
        df = pl.DataFrame(schema={"id": pl.Int64})

        assert DataValidator().add_unique_check("id").validate(df).status == ValidationStatus.PASSED

    def test_range_check_ignores_nulls(self):
        df = pl.DataFrame({"score": [1, 5, None, 6]})

        result = DataValidator().add_range_check("score", min_value=1, max_value=5).validate(df)

        assert result.checks[0].failed_rows == 1

    def test_enum_check(self):
        df = pl.DataFrame({"status": ["on_time", "late", "lost"]})

        result = DataValidator().add_enum_check("status", ["on_time", "late"]).validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_warning_gives_partial_status(self):
        df = pl.DataFrame({"status": ["lost"]})

        validator = DataValidator().add_enum_check("status", ["ok"], severity=ValidationSeverity.WARNING)

        assert validator.validate(df).status == ValidationStatus.PARTIAL
        assert DataValidator(strict_mode=True).add_enum_check(
            "status", ["ok"], severity=ValidationSeverity.WARNING
        ).validate(df).status == ValidationStatus.FAILED

    def test_missing_column(self):
        result = DataValidator().add_not_null_check("missing").validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_custom_check_error_fails(self):
        def broken(df):
            raise RuntimeError("boom")

        result = DataValidator().add_custom_check("broken", broken, "never").validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert "boom" in result.checks[0].message

    def test_referential_integrity(self):
        orders = pl.DataFrame({"customer_id": ["c1", "c2", None]})
        customers = pl.DataFrame({"customer_id": ["c1"]})

        result = DataValidator().add_referential_integrity_check(
            "customer_id", customers, "customer_id", severity=ValidationSeverity.WARNING
        ).validate(orders)

        assert result.checks[0].failed_rows == 1
        assert result.status == ValidationStatus.PARTIAL

    def test_errors_property(self):
        df = pl.DataFrame({"id": [None, None]})

        result = DataValidator().add_not_null_check("id").add_unique_check("id").validate(df)

        assert [c.name for c in result.errors] == ["not_null_id", "unique_id"]
        assert result.success_rate == 0.0


class TestLayerSuites:
    """Tests for the pre-built layer invariant suites"""

    def test_staging_suites_pass(self, staging_tables):
        validators = create_staging_validators()

        for name, df in staging_tables.items():
            assert validators[name].validate(df).status == ValidationStatus.PASSED, name

    def test_intermediate_suites_pass(self, staging_tables, orders_enriched):
        history = build_seller_status_history(
            staging_tables["sellers"], staging_tables["order_items"], orders_enriched
        )
        validators = create_intermediate_validators(expected_orders=staging_tables["orders"].height)

        assert validators["orders_enriched"].validate(orders_enriched).status == ValidationStatus.PASSED
        assert validators["seller_status_history"].validate(history).status == ValidationStatus.PASSED

    def test_enriched_row_count_mismatch(self, orders_enriched):
        validator = create_intermediate_validators(expected_orders=99)["orders_enriched"]

        assert validator.validate(orders_enriched).status == ValidationStatus.FAILED

    @pytest.fixture
    def history(self):
        return pl.DataFrame({
            "scd_id": [1, 2, 3],
            "seller_id": ["s1", "s1", "s2"],
            "seller_status": ["active", "inactive", "active"],
            "valid_from": [date(2018, 1, 1), date(2018, 2, 1), date(2018, 1, 1)],
            "valid_to": [date(2018, 1, 31), OPEN_ENDED, OPEN_ENDED],
            "is_current": [False, True, True],
            "orders_at_change": [1, 0, 2],
        })

    def test_seller_history_valid(self, history):
        assert create_seller_history_validator().validate(history).status == ValidationStatus.PASSED

    def test_seller_history_gap(self, history):
        broken = history.with_columns(
            pl.when(pl.col("scd_id") == 1).then(date(2018, 1, 20)).otherwise(pl.col("valid_to")).alias("valid_to")
        )

        result = create_seller_history_validator().validate(broken)

        assert [c.name for c in result.errors] == ["contiguous_intervals"]

    def test_seller_history_two_current(self, history):
        broken = history.with_columns(pl.lit(True).alias("is_current"))

        result = create_seller_history_validator().validate(broken)

        assert "one_current_per_seller" in [c.name for c in result.errors]

    def test_mart_key_uniqueness(self):
        df = pl.DataFrame({"customer_state": ["SP", "SP"]})

        assert create_mart_validator("state_performance", ("customer_state",)).validate(df).status == ValidationStatus.FAILED
        assert create_mart_validator("seller_scorecard", None).validate(df).status == ValidationStatus.PASSED

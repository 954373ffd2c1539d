"""
Warehouse Transformer

Layer build orchestrator: staging, then intermediate, then mart. Every
layer is built fully in memory, checked against its invariants and
published as a new snapshot. A failing layer raises LayerBuildError and
leaves its previous snapshot current.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import polars as pl
import structlog

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.exceptions import LayerBuildError
from ecommerce_warehouse.intermediate import (
    OrderEnricher,
    SellerHistoryBuilder,
    build_customer_history,
    build_product_performance,
    build_seller_performance,
)
from ecommerce_warehouse.mart import MART_VIEWS, MartBuilder, MartInputs, recency_anchor
from ecommerce_warehouse.quality import (
    DataValidator,
    ValidationResult,
    ValidationStatus,
    create_intermediate_validators,
    create_mart_validator,
    create_staging_validators,
)
from ecommerce_warehouse.staging import RecordIssue, RecordNormalizer
from ecommerce_warehouse.storage import SnapshotStore

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Layer(str, Enum):
    """Warehouse layers in build order"""
    STAGING = "staging"
    INTERMEDIATE = "intermediate"
    MART = "mart"


@dataclass
class LayerResult:
    """Result of one layer build"""
    layer: Layer
    tables: Dict[str, pl.DataFrame]
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    version: Optional[str] = None
    issues: List[RecordIssue] = field(default_factory=list)
    validation: Dict[str, ValidationResult] = field(default_factory=dict)

    @property
    def row_counts(self) -> Dict[str, int]:
        return {name: df.height for name, df in self.tables.items()}


class WarehouseTransformer:
    """
    Builds and publishes the warehouse layers.

    Without a snapshot store layers are built and validated but not
    persisted; refresh_view needs a store.

    Example:
        transformer = WarehouseTransformer(store=SnapshotStore())
        results = await transformer.run_full_build(raw_streams)
        await transformer.refresh_view("customer_segments")
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        enable_validation: bool = True,
        max_workers: Optional[int] = None,
        mart_builder: Optional[MartBuilder] = None,
    ):
        self.store = store
        self.enable_validation = enable_validation
        self.max_workers = max_workers or get_settings().warehouse.aggregation_workers
        self.normalizer = RecordNormalizer()
        self.enricher = OrderEnricher()
        self.history_builder = SellerHistoryBuilder()
        self.mart_builder = mart_builder or MartBuilder()

    def _validate(
        self,
        layer: Layer,
        tables: Mapping[str, pl.DataFrame],
        validators: Mapping[str, DataValidator],
    ) -> Dict[str, ValidationResult]:
        """Run the layer's invariant suites; any ERROR failure aborts the layer"""
        if not self.enable_validation:
            return {}

        results = {name: validators[name].validate(df) for name, df in tables.items() if name in validators}
        failed = sorted(name for name, result in results.items() if result.status == ValidationStatus.FAILED)
        if failed:
            details = "; ".join(
                f"{name}: {', '.join(check.name for check in results[name].errors)}" for name in failed
            )
            raise LayerBuildError(layer.value, f"invariant checks failed ({details})")
        return results

    def _complete(
        self,
        layer: Layer,
        tables: Dict[str, pl.DataFrame],
        started_at: datetime,
        validators: Mapping[str, DataValidator],
        issues: Optional[List[RecordIssue]] = None,
    ) -> LayerResult:
        validation = self._validate(layer, tables, validators)
        version = self.store.publish_layer(layer.value, tables) if self.store else None
        completed_at = _utcnow()

        result = LayerResult(
            layer=layer,
            tables=tables,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            version=version,
            issues=issues or [],
            validation=validation,
        )
        logger.info(
            "Layer build complete",
            layer=layer.value,
            version=version,
            tables=result.row_counts,
            issues=len(result.issues),
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    def _failure(self, layer: Layer, error: Exception) -> LayerBuildError:
        if isinstance(error, LayerBuildError):
            return error
        logger.error("Layer build failed", layer=layer.value, error=str(error), error_type=type(error).__name__)
        return LayerBuildError(layer.value, str(error), cause=error)

    async def _run_limited(self, semaphore: asyncio.Semaphore, func: Callable[..., Any], *args: Any) -> Any:
        async with semaphore:
            return await asyncio.to_thread(func, *args)

    async def build_staging(self, raw: Mapping[str, pl.DataFrame]) -> LayerResult:
        """
        Normalize the raw streams into staging tables.

        Args:
            raw: Untyped raw DataFrames keyed by stream name

        Returns:
            LayerResult with the staged tables and collected record issues
        """
        started_at = _utcnow()
        logger.info("Building layer", layer=Layer.STAGING.value, streams=sorted(raw))

        try:
            normalized = await asyncio.to_thread(self.normalizer.normalize_all, raw)
            tables = {name: stream.data for name, stream in normalized.items()}
            issues = [issue for stream in normalized.values() for issue in stream.issues]
            return self._complete(Layer.STAGING, tables, started_at, create_staging_validators(), issues)
        except Exception as e:
            raise self._failure(Layer.STAGING, e) from e

    async def build_intermediate(self, staging: Mapping[str, pl.DataFrame]) -> LayerResult:
        """
        Build the enriched order fact, then the per-key aggregates and the
        seller status history concurrently.
        """
        started_at = _utcnow()
        logger.info("Building layer", layer=Layer.INTERMEDIATE.value)

        try:
            orders = staging["orders"]
            items = staging["order_items"]
            payments = staging["order_payments"]
            sellers = staging["sellers"]

            orders_enriched = await asyncio.to_thread(
                self.enricher.build,
                orders,
                staging["customers"],
                items,
                payments,
                staging["order_reviews"],
            )

            semaphore = asyncio.Semaphore(self.max_workers)
            seller_performance, product_performance, customer_history, seller_history = await asyncio.gather(
                self._run_limited(semaphore, build_seller_performance, sellers, items, orders_enriched),
                self._run_limited(semaphore, build_product_performance, staging["products"], items, orders_enriched),
                self._run_limited(semaphore, build_customer_history, orders_enriched, payments),
                self._run_limited(semaphore, self.history_builder.build, sellers, items, orders_enriched),
            )

            tables = {
                "orders_enriched": orders_enriched,
                "seller_performance": seller_performance,
                "product_performance": product_performance,
                "customer_history": customer_history,
                "seller_status_history": seller_history,
            }
            return self._complete(
                Layer.INTERMEDIATE,
                tables,
                started_at,
                create_intermediate_validators(expected_orders=orders.height),
            )
        except Exception as e:
            raise self._failure(Layer.INTERMEDIATE, e) from e

    def _mart_inputs(
        self,
        staging: Mapping[str, pl.DataFrame],
        intermediate: Mapping[str, pl.DataFrame],
        anchor: Optional[datetime],
    ) -> MartInputs:
        orders_enriched = intermediate["orders_enriched"]
        return MartInputs(
            orders_enriched=orders_enriched,
            items=staging["order_items"],
            products=staging["products"],
            seller_performance=intermediate["seller_performance"],
            customer_history=intermediate["customer_history"],
            recency_anchor=anchor or recency_anchor(orders_enriched),
        )

    async def build_mart(
        self,
        staging: Mapping[str, pl.DataFrame],
        intermediate: Mapping[str, pl.DataFrame],
        anchor: Optional[datetime] = None,
    ) -> LayerResult:
        """
        Build every mart view.

        The recency anchor defaults to the latest purchase timestamp of the
        enriched orders and is computed once for the whole layer.
        """
        started_at = _utcnow()
        logger.info("Building layer", layer=Layer.MART.value)

        try:
            inputs = self._mart_inputs(staging, intermediate, anchor)
            tables = await asyncio.to_thread(self.mart_builder.build_all, inputs)
            validators = {name: create_mart_validator(name, view.key) for name, view in MART_VIEWS.items()}
            return self._complete(Layer.MART, tables, started_at, validators)
        except Exception as e:
            raise self._failure(Layer.MART, e) from e

    async def run_full_build(
        self,
        raw: Mapping[str, pl.DataFrame],
        anchor: Optional[datetime] = None,
    ) -> Dict[str, LayerResult]:
        """
        Rebuild every layer from the raw streams.

        Layers run strictly in order; the first failing layer aborts the run.

        Args:
            raw: Untyped raw DataFrames keyed by stream name
            anchor: Optional fixed recency anchor for customer segments

        Returns:
            Layer results keyed by layer name
        """
        logger.info("Starting full warehouse build")
        started_at = _utcnow()

        staging = await self.build_staging(raw)
        intermediate = await self.build_intermediate(staging.tables)
        mart = await self.build_mart(staging.tables, intermediate.tables, anchor)

        results = {result.layer.value: result for result in (staging, intermediate, mart)}
        logger.info(
            "Full warehouse build complete",
            versions={name: result.version for name, result in results.items()},
            record_issues=len(staging.issues),
            duration_seconds=round((_utcnow() - started_at).total_seconds(), 3),
        )
        return results

    async def refresh_view(self, name: str, anchor: Optional[datetime] = None) -> LayerResult:
        """
        Rebuild one mart view from the current snapshots and publish it.

        Readers of the previous mart version are not affected; the other
        views of the new version are shared with it unchanged.
        """
        if self.store is None:
            raise ValueError("refresh_view requires a snapshot store")
        if name not in MART_VIEWS:
            raise ValueError(f"Unknown mart view: {name}. Known views: {sorted(MART_VIEWS)}")

        started_at = _utcnow()
        logger.info("Refreshing mart view", view=name)

        try:
            staging = {
                table: self.store.read_table(Layer.STAGING.value, table)
                for table in ("order_items", "products")
            }
            intermediate = self.store.read_layer(Layer.INTERMEDIATE.value)
            inputs = self._mart_inputs(staging, intermediate, anchor)

            view = await asyncio.to_thread(self.mart_builder.build_view, name, inputs)
            tables = {name: view}
            validation = self._validate(Layer.MART, tables, {name: create_mart_validator(name, MART_VIEWS[name].key)})
            version = self.store.replace_table(Layer.MART.value, name, view)
        except Exception as e:
            raise self._failure(Layer.MART, e) from e

        completed_at = _utcnow()
        logger.info("Mart view refreshed", view=name, version=version, rows=view.height)
        return LayerResult(
            layer=Layer.MART,
            tables=tables,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            version=version,
            validation=validation,
        )

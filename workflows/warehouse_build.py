"""
Prefect Workflow Orchestration - Warehouse Build

Flows:
- build_warehouse: raw CSV streams -> staging -> intermediate -> mart
- refresh_mart_view: rebuild a single mart view from the current snapshots
"""

from datetime import datetime
from typing import Dict, Optional

import polars as pl
from prefect import flow, get_run_logger, task
from prefect.cache_policies import NONE

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.ingestion import RawStreamLoader
from ecommerce_warehouse.storage import SnapshotStore
from ecommerce_warehouse.transformation import LayerResult, WarehouseTransformer


def _summary(result: LayerResult) -> dict:
    return {
        "layer": result.layer.value,
        "version": result.version,
        "tables": result.row_counts,
        "record_issues": len(result.issues),
        "duration_seconds": result.duration_seconds,
    }


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_raw_streams",
    description="Read the raw CSV streams as text",
    retries=2,
    retry_delay_seconds=30,
    cache_policy=NONE,
)
def load_raw_streams(raw_path: str) -> Dict[str, pl.DataFrame]:
    """Load all nine raw streams"""
    logger = get_run_logger()
    raw = RawStreamLoader(raw_path).load_all()
    logger.info(f"Loaded {len(raw)} raw streams with {sum(df.height for df in raw.values())} rows")
    return raw


@task(name="build_staging", description="Normalize raw streams into staging tables", cache_policy=NONE)
async def build_staging(transformer: WarehouseTransformer, raw: Dict[str, pl.DataFrame]) -> LayerResult:
    result = await transformer.build_staging(raw)
    if result.issues:
        get_run_logger().warning(f"Staging recorded {len(result.issues)} record issues")
    return result


@task(name="build_intermediate", description="Build enriched orders, aggregates and seller history", cache_policy=NONE)
async def build_intermediate(transformer: WarehouseTransformer, staging: LayerResult) -> LayerResult:
    return await transformer.build_intermediate(staging.tables)


@task(name="build_mart", description="Build the reporting views", cache_policy=NONE)
async def build_mart(
    transformer: WarehouseTransformer,
    staging: LayerResult,
    intermediate: LayerResult,
    anchor: Optional[datetime] = None,
) -> LayerResult:
    return await transformer.build_mart(staging.tables, intermediate.tables, anchor)


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="build_warehouse",
    description="Full rebuild of every warehouse layer",
)
async def build_warehouse(
    raw_path: Optional[str] = None,
    warehouse_path: Optional[str] = None,
    anchor: Optional[datetime] = None,
) -> dict:
    """
    Full warehouse build.

    Steps:
    1. Load raw streams
    2. Build and publish staging
    3. Build and publish intermediate
    4. Build and publish mart

    A failing layer aborts the flow; its previous snapshot stays current.
    """
    logger = get_run_logger()
    settings = get_settings()

    store = SnapshotStore(warehouse_path or settings.data_lake.warehouse_path)
    transformer = WarehouseTransformer(store=store)

    raw = load_raw_streams(raw_path or settings.data_lake.raw_path)
    staging = await build_staging(transformer, raw)
    intermediate = await build_intermediate(transformer, staging)
    mart = await build_mart(transformer, staging, intermediate, anchor)

    summary = {result.layer.value: _summary(result) for result in (staging, intermediate, mart)}
    versions = ", ".join(f"{layer}={info['version']}" for layer, info in summary.items())
    logger.info(f"Warehouse build complete: {versions}")
    return summary


@flow(
    name="refresh_mart_view",
    description="Rebuild and republish a single mart view",
)
async def refresh_mart_view(
    view: str,
    warehouse_path: Optional[str] = None,
    anchor: Optional[datetime] = None,
) -> dict:
    """Refresh one mart view from the current intermediate snapshot"""
    logger = get_run_logger()
    store = SnapshotStore(warehouse_path or get_settings().data_lake.warehouse_path)

    result = await WarehouseTransformer(store=store).refresh_view(view, anchor)
    logger.info(f"Refreshed mart view {view} as version {result.version}")
    return _summary(result)


if __name__ == "__main__":
    import asyncio

    from ecommerce_warehouse.config.logging import configure_logging

    configure_logging()
    asyncio.run(build_warehouse())

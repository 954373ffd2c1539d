"""
Unit Tests - Prefect Workflows
"""
import importlib.util
from pathlib import Path

import pytest
from prefect.testing.utilities import prefect_test_harness

from ecommerce_warehouse.ingestion import write_raw_streams
from ecommerce_warehouse.mart import MART_VIEWS
from ecommerce_warehouse.storage import SnapshotStore

WORKFLOW_PATH = Path(__file__).resolve().parents[2] / "workflows" / "warehouse_build.py"


@pytest.fixture(scope="module", autouse=True)
def prefect_backend():
    """Temporary Prefect API and database for the flow runs"""
    with prefect_test_harness():
        yield


@pytest.fixture(scope="module")
def warehouse_flows():
    spec = importlib.util.spec_from_file_location("warehouse_build", WORKFLOW_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def raw_zone(raw_streams, tmp_path) -> Path:
    raw_path = tmp_path / "raw"
    write_raw_streams(raw_streams, raw_path)
    return raw_path


class TestWarehouseFlows:
    """Tests for the build_warehouse and refresh_mart_view flows"""

    @pytest.mark.asyncio
    async def test_build_warehouse(self, warehouse_flows, raw_zone, tmp_path):
        warehouse_path = tmp_path / "warehouse"

        summary = await warehouse_flows.build_warehouse(
            raw_path=str(raw_zone), warehouse_path=str(warehouse_path)
        )

        assert {layer: info["version"] for layer, info in summary.items()} == {
            "staging": "v000001",
            "intermediate": "v000001",
            "mart": "v000001",
        }
        assert summary["staging"]["record_issues"] == 0
        assert summary["intermediate"]["tables"]["orders_enriched"] == 4
        assert summary["intermediate"]["tables"]["seller_status_history"] == 6

        store = SnapshotStore(warehouse_path)
        assert sorted(store.table_names("mart")) == sorted(MART_VIEWS)
        assert store.read_table("mart", "monthly_revenue").height == 2

    @pytest.mark.asyncio
    async def test_refresh_mart_view(self, warehouse_flows, raw_zone, tmp_path):
        warehouse_path = str(tmp_path / "warehouse")
        await warehouse_flows.build_warehouse(raw_path=str(raw_zone), warehouse_path=warehouse_path)

        summary = await warehouse_flows.refresh_mart_view("seller_scorecard", warehouse_path=warehouse_path)

        assert summary["layer"] == "mart"
        assert summary["version"] == "v000002"
        assert summary["tables"] == {"seller_scorecard": 2}
        assert SnapshotStore(warehouse_path).current_version("mart") == "v000002"

    @pytest.mark.asyncio
    async def test_refresh_unknown_view_fails(self, warehouse_flows, tmp_path):
        with pytest.raises(ValueError):
            await warehouse_flows.refresh_mart_view("weekly_revenue", warehouse_path=str(tmp_path))

"""
Unit Tests - Snapshot Store
"""
import os
from unittest.mock import patch

import polars as pl
import pytest

from ecommerce_warehouse.exceptions import SnapshotError
from ecommerce_warehouse.storage import SnapshotStore


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "warehouse", retain=2)


def tables(n: int):
    return {
        "alpha": pl.DataFrame({"id": list(range(n))}),
        "beta": pl.DataFrame({"name": ["x"] * n}),
    }


class TestSnapshotStore:
    """Tests for SnapshotStore"""

    def test_publish_and_read(self, store):
        version = store.publish_layer("mart", tables(3))

        assert version == "v000001"
        assert store.current_version("mart") == "v000001"
        assert store.read_table("mart", "alpha")["id"].to_list() == [0, 1, 2]
        assert store.table_names("mart") == ["alpha", "beta"]
        assert store.metadata("mart")["tables"] == {"alpha": 3, "beta": 3}

    def test_nothing_published(self, store):
        assert store.current_version("mart") is None
        with pytest.raises(SnapshotError):
            store.read_table("mart", "alpha")

    def test_unknown_table(self, store):
        store.publish_layer("mart", tables(1))

        with pytest.raises(SnapshotError):
            store.read_table("mart", "gamma")

    def test_new_version_replaces_current(self, store):
        store.publish_layer("mart", tables(1))
        store.publish_layer("mart", tables(2))

        assert store.current_version("mart") == "v000002"
        assert store.read_table("mart", "alpha").height == 2

    def test_reader_of_previous_version_is_unaffected(self, store):
        store.publish_layer("mart", tables(1))
        previous = store.current_path("mart")

        store.publish_layer("mart", tables(5))

        assert pl.read_parquet(previous / "alpha.parquet").height == 1

    def test_failed_publish_keeps_previous_snapshot(self, store):
        store.publish_layer("mart", tables(1))

        with patch.object(pl.DataFrame, "write_parquet", side_effect=OSError("disk full")):
            with pytest.raises(SnapshotError):
                store.publish_layer("mart", tables(4))

        assert store.current_version("mart") == "v000001"
        assert store.read_table("mart", "alpha").height == 1
        leftovers = [p.name for p in store.layer_path("mart").iterdir() if p.name.startswith("_build-")]
        assert leftovers == []

    def test_empty_layer_rejected(self, store):
        with pytest.raises(ValueError):
            store.publish_layer("mart", {})

    def test_prune_keeps_retained_versions(self, store):
        for n in range(1, 5):
            store.publish_layer("mart", tables(n))

        assert store.list_versions("mart") == ["v000003", "v000004"]

    def test_replace_table_shares_unchanged_files(self, store):
        store.publish_layer("mart", tables(2))
        before = store.current_path("mart")

        version = store.replace_table("mart", "alpha", pl.DataFrame({"id": [7]}))
        after = store.current_path("mart")

        assert version == "v000002"
        assert store.read_table("mart", "alpha")["id"].to_list() == [7]
        assert store.read_table("mart", "beta").height == 2
        assert store.metadata("mart")["tables"] == {"alpha": 1, "beta": 2}
        assert pl.read_parquet(before / "alpha.parquet").height == 2
        assert os.path.samefile(before / "beta.parquet", after / "beta.parquet")

    def test_replace_unknown_table(self, store):
        store.publish_layer("mart", tables(1))

        with pytest.raises(SnapshotError):
            store.replace_table("mart", "gamma", pl.DataFrame({"id": [1]}))

    def test_read_layer(self, store):
        store.publish_layer("staging", tables(2))

        layer = store.read_layer("staging")

        assert sorted(layer) == ["alpha", "beta"]

    def test_discard_builds(self, store):
        store.publish_layer("mart", tables(1))
        (store.layer_path("mart") / "_build-stale").mkdir()

        assert store.discard_builds("mart") == 1
        assert store.list_versions("mart") == ["v000001"]

    def test_retain_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            SnapshotStore(tmp_path, retain=0)

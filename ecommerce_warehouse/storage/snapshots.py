"""
Layer Snapshot Store

Versioned parquet snapshots of the staging, intermediate and mart layers.

Layout:
    <root>/<layer>/CURRENT          name of the published version
    <root>/<layer>/v000001/         one parquet file per table + metadata.json
    <root>/<layer>/_build-<id>/     in-progress build, never read

A layer is published by writing all of its tables into a fresh build
directory, renaming it to the next version and atomically replacing the
CURRENT pointer. Readers resolve the pointer once and keep reading the
version they resolved, so a publish never changes data under a reader.
"""

import json
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.exceptions import SnapshotError

logger = structlog.get_logger(__name__)

POINTER_FILE = "CURRENT"
METADATA_FILE = "metadata.json"
BUILD_PREFIX = "_build-"
VERSION_PREFIX = "v"


class SnapshotStore:
    """
    Atomic, versioned storage of warehouse layers.

    Example:
        store = SnapshotStore("./data/warehouse", retain=3)
        version = store.publish_layer("mart", {"monthly_revenue": df})
        df = store.read_table("mart", "monthly_revenue")
    """

    def __init__(self, root: Optional[Union[str, Path]] = None, retain: Optional[int] = None):
        lake = get_settings().data_lake
        self.root = Path(root or lake.warehouse_path)
        self.retain = retain if retain is not None else lake.retain_snapshots
        if self.retain < 1:
            raise ValueError("retain must keep at least one snapshot")
        self.root.mkdir(parents=True, exist_ok=True)

    def layer_path(self, layer: str) -> Path:
        return self.root / layer

    def list_versions(self, layer: str) -> List[str]:
        """Published versions of a layer, oldest first"""
        path = self.layer_path(layer)
        if not path.exists():
            return []
        return sorted(
            entry.name
            for entry in path.iterdir()
            if entry.is_dir() and entry.name.startswith(VERSION_PREFIX)
        )

    def current_version(self, layer: str) -> Optional[str]:
        """Version the CURRENT pointer names, None before the first publish"""
        pointer = self.layer_path(layer) / POINTER_FILE
        if not pointer.exists():
            return None
        return pointer.read_text().strip() or None

    def current_path(self, layer: str) -> Path:
        version = self.current_version(layer)
        if version is None:
            raise SnapshotError(f"Layer '{layer}' has no published snapshot")
        return self.layer_path(layer) / version

    def metadata(self, layer: str) -> Dict:
        """Metadata of the current version of a layer"""
        with open(self.current_path(layer) / METADATA_FILE, "r") as f:
            return json.load(f)

    def table_names(self, layer: str) -> List[str]:
        return sorted(self.metadata(layer)["tables"])

    def read_table(self, layer: str, table: str) -> pl.DataFrame:
        """Read one table from the current version of a layer"""
        path = self.current_path(layer) / f"{table}.parquet"
        if not path.exists():
            raise SnapshotError(f"Table '{table}' not found in layer '{layer}'")
        return pl.read_parquet(path)

    def read_layer(self, layer: str) -> Dict[str, pl.DataFrame]:
        """Read every table of the current version, resolving the pointer once"""
        path = self.current_path(layer)
        with open(path / METADATA_FILE, "r") as f:
            tables = json.load(f)["tables"]
        return {name: pl.read_parquet(path / f"{name}.parquet") for name in tables}

    def _next_version(self, layer: str) -> str:
        versions = self.list_versions(layer)
        last = int(versions[-1][len(VERSION_PREFIX):]) if versions else 0
        return f"{VERSION_PREFIX}{last + 1:06d}"

    def _new_build_dir(self, layer: str) -> Path:
        build_dir = self.layer_path(layer) / f"{BUILD_PREFIX}{uuid.uuid4().hex}"
        build_dir.mkdir(parents=True)
        return build_dir

    def _write_metadata(self, build_dir: Path, layer: str, tables: Dict[str, int]) -> None:
        with open(build_dir / METADATA_FILE, "w") as f:
            json.dump(
                {
                    "layer": layer,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                    "tables": tables,
                },
                f,
                indent=2,
            )

    def _swap_pointer(self, layer: str, version: str) -> None:
        layer_path = self.layer_path(layer)
        staged = layer_path / f"{POINTER_FILE}.{uuid.uuid4().hex}.tmp"
        staged.write_text(version)
        os.replace(staged, layer_path / POINTER_FILE)

    def _commit(self, layer: str, build_dir: Path) -> str:
        version = self._next_version(layer)
        os.rename(build_dir, self.layer_path(layer) / version)
        self._swap_pointer(layer, version)
        return version

    def publish_layer(self, layer: str, tables: Dict[str, pl.DataFrame]) -> str:
        """
        Publish a complete layer as a new version.

        Args:
            layer: Layer name
            tables: Every table of the layer

        Returns:
            The new current version

        Raises:
            SnapshotError: if writing fails; the previous version stays current
        """
        if not tables:
            raise ValueError("A layer snapshot needs at least one table")

        build_dir = self._new_build_dir(layer)
        try:
            for name, df in tables.items():
                df.write_parquet(build_dir / f"{name}.parquet")
            self._write_metadata(build_dir, layer, {name: df.height for name, df in tables.items()})
            version = self._commit(layer, build_dir)
        except Exception as e:
            shutil.rmtree(build_dir, ignore_errors=True)
            logger.error("Snapshot publish failed", layer=layer, error=str(e))
            raise SnapshotError(f"Could not publish layer '{layer}': {e}") from e

        logger.info(
            "Published layer snapshot",
            layer=layer,
            version=version,
            tables=len(tables),
            rows=sum(df.height for df in tables.values()),
        )
        self.prune(layer)
        return version

    def replace_table(self, layer: str, table: str, df: pl.DataFrame) -> str:
        """
        Publish a new version in which one table is replaced.

        Unchanged tables are hard-linked from the current version, falling
        back to a copy where the filesystem does not support links.
        """
        source = self.current_path(layer)
        with open(source / METADATA_FILE, "r") as f:
            tables = json.load(f)["tables"]
        if table not in tables:
            raise SnapshotError(f"Table '{table}' not found in layer '{layer}'")

        build_dir = self._new_build_dir(layer)
        try:
            for name in tables:
                if name == table:
                    continue
                src = source / f"{name}.parquet"
                dst = build_dir / f"{name}.parquet"
                try:
                    os.link(src, dst)
                except OSError:
                    shutil.copy2(src, dst)
            df.write_parquet(build_dir / f"{table}.parquet")
            tables[table] = df.height
            self._write_metadata(build_dir, layer, tables)
            version = self._commit(layer, build_dir)
        except Exception as e:
            shutil.rmtree(build_dir, ignore_errors=True)
            logger.error("Table refresh failed", layer=layer, table=table, error=str(e))
            raise SnapshotError(f"Could not refresh '{layer}.{table}': {e}") from e

        logger.info("Refreshed snapshot table", layer=layer, table=table, version=version, rows=df.height)
        self.prune(layer)
        return version

    def prune(self, layer: str) -> List[str]:
        """Remove versions beyond the retention count; the current version is always kept"""
        current = self.current_version(layer)
        versions = self.list_versions(layer)
        keep = set(versions[-self.retain:])
        if current:
            keep.add(current)

        removed = [version for version in versions if version not in keep]
        for version in removed:
            shutil.rmtree(self.layer_path(layer) / version, ignore_errors=True)

        if removed:
            logger.debug("Pruned layer snapshots", layer=layer, removed=removed)
        return removed

    def discard_builds(self, layer: str) -> int:
        """Remove build directories left behind by interrupted runs"""
        path = self.layer_path(layer)
        if not path.exists():
            return 0
        stale = [entry for entry in path.iterdir() if entry.is_dir() and entry.name.startswith(BUILD_PREFIX)]
        for entry in stale:
            shutil.rmtree(entry, ignore_errors=True)
        return len(stale)

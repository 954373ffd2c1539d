"""
Pipeline Exceptions
"""
from typing import List, Optional


class WarehouseError(Exception):
    """Base class for all pipeline errors"""


class SchemaError(WarehouseError):
    """Raw stream is missing required columns"""

    def __init__(self, source: str, missing: List[str]):
        self.source = source
        self.missing = missing
        super().__init__(f"Source '{source}' is missing columns: {', '.join(missing)}")


class SnapshotError(WarehouseError):
    """Snapshot store could not read or publish a table"""


class LayerBuildError(WarehouseError):
    """A layer rebuild was aborted; the previous snapshot stays current"""

    def __init__(self, layer: str, message: str, cause: Optional[BaseException] = None):
        self.layer = layer
        self.cause = cause
        super().__init__(f"Layer '{layer}' build failed: {message}")

"""
Layer Snapshot Storage
"""
from .snapshots import SnapshotStore

__all__ = ["SnapshotStore"]

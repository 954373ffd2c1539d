"""
Data Ingestion Module
"""
from .raw_loader import OLIST_FILE_NAMES, RawFile, RawStreamLoader, write_raw_streams

__all__ = [
    "OLIST_FILE_NAMES",
    "RawFile",
    "RawStreamLoader",
    "write_raw_streams",
]

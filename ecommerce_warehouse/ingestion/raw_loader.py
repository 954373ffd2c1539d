"""
Raw Stream Loader

Reads the nine raw input streams from header-row CSV files. Every column is
read as text; typing happens in the staging layer.

A stream is found under its Olist file name (olist_orders_dataset.csv, ...)
or under <stream>.csv.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.staging.schemas import StreamName

logger = structlog.get_logger(__name__)

OLIST_FILE_NAMES = {
    StreamName.CUSTOMERS: "olist_customers_dataset.csv",
    StreamName.ORDERS: "olist_orders_dataset.csv",
    StreamName.ORDER_ITEMS: "olist_order_items_dataset.csv",
    StreamName.ORDER_PAYMENTS: "olist_order_payments_dataset.csv",
    StreamName.ORDER_REVIEWS: "olist_order_reviews_dataset.csv",
    StreamName.PRODUCTS: "olist_products_dataset.csv",
    StreamName.SELLERS: "olist_sellers_dataset.csv",
    StreamName.GEOLOCATION: "olist_geolocation_dataset.csv",
    StreamName.CATEGORY_TRANSLATION: "product_category_name_translation.csv",
}


@dataclass
class RawFile:
    """A raw stream file found on disk"""
    stream: StreamName
    path: Path
    rows: int
    file_hash: str


class RawStreamLoader:
    """
    Loads raw CSV streams as untyped DataFrames.

    Example:
        loader = RawStreamLoader("data/raw")
        raw = loader.load_all()
        orders = raw["orders"]
    """

    def __init__(
        self,
        raw_path: Optional[Union[str, Path]] = None,
        delimiter: Optional[str] = None,
        encoding: Optional[str] = None,
    ):
        lake = get_settings().data_lake
        self.raw_path = Path(raw_path or lake.raw_path)
        self.delimiter = delimiter or lake.csv_delimiter
        self.encoding = encoding or lake.encoding
        self.loaded: List[RawFile] = []

    def _compute_file_hash(self, file_path: Path) -> str:
        """MD5 of the file, recorded for audit"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def locate(self, stream: StreamName) -> Path:
        """Path of a stream's file, preferring the Olist file name"""
        candidates = [self.raw_path / OLIST_FILE_NAMES[stream], self.raw_path / f"{stream.value}.csv"]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        raise FileNotFoundError(
            f"No file for stream '{stream.value}' in {self.raw_path} "
            f"(tried {', '.join(c.name for c in candidates)})"
        )

    def load(self, stream: StreamName) -> pl.DataFrame:
        """Read one stream with every column as text"""
        path = self.locate(stream)
        df = pl.read_csv(
            path,
            separator=self.delimiter,
            encoding=self.encoding,
            infer_schema_length=0,
            null_values=[""],
        )
        self.loaded.append(RawFile(stream=stream, path=path, rows=df.height, file_hash=self._compute_file_hash(path)))
        logger.info("Loaded raw stream", stream=stream.value, file=path.name, rows=df.height)
        return df

    def load_all(self) -> Dict[str, pl.DataFrame]:
        """Read all nine streams keyed by stream name"""
        raw = {stream.value: self.load(stream) for stream in StreamName}
        logger.info("Loaded raw streams", streams=len(raw), rows=sum(df.height for df in raw.values()))
        return raw


def write_raw_streams(raw: Dict[str, pl.DataFrame], raw_path: Union[str, Path], olist_names: bool = True) -> List[Path]:
    """Write raw streams as CSV files the loader can read back"""
    directory = Path(raw_path)
    directory.mkdir(parents=True, exist_ok=True)

    written = []
    for name, df in raw.items():
        stream = StreamName(name)
        path = directory / (OLIST_FILE_NAMES[stream] if olist_names else f"{stream.value}.csv")
        df.write_csv(path)
        written.append(path)
    logger.info("Wrote raw streams", directory=str(directory), files=len(written))
    return written

"""
Synthetic Data Generator

Generates raw marketplace streams shaped like the Olist public dataset, with
every value rendered as text the way the raw CSV files carry it.
Includes:
- Customers (one customer_id per order, shared customer_unique_id)
- Sellers and products with Portuguese category names
- Orders with items, payments and reviews
- Geolocation samples and the category translation table
- Optional dirty records for exercising the staging layer
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import polars as pl
import structlog
from faker import Faker

from ecommerce_warehouse.config import get_settings
from ecommerce_warehouse.ingestion.raw_loader import write_raw_streams

logger = structlog.get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = [
    ("beleza_saude", "health_beauty", 15, 300),
    ("cama_mesa_banho", "bed_bath_table", 20, 250),
    ("esporte_lazer", "sports_leisure", 15, 400),
    ("informatica_acessorios", "computers_accessories", 30, 900),
    ("moveis_decoracao", "furniture_decor", 40, 700),
    ("utilidades_domesticas", "housewares", 10, 200),
    ("relogios_presentes", "watches_gifts", 50, 1200),
    ("telefonia", "telephony", 20, 800),
    ("brinquedos", "toys", 10, 250),
    # Not in the translation table
    ("portateis_cozinha_e_preparadores_de_alimentos", None, 60, 500),
]

STATES = ["SP", "RJ", "MG", "RS", "PR", "SC", "BA", "DF", "GO", "ES", "PE", "CE"]
STATE_WEIGHTS = [0.40, 0.13, 0.12, 0.06, 0.05, 0.04, 0.04, 0.03, 0.03, 0.03, 0.04, 0.03]

PAYMENT_TYPES = [("credit_card", 0.74), ("boleto", 0.19), ("voucher", 0.05), ("debit_card", 0.02)]

ORDER_STATUSES = [
    ("delivered", 0.90),
    ("shipped", 0.03),
    ("canceled", 0.02),
    ("invoiced", 0.02),
    ("processing", 0.02),
    ("unavailable", 0.01),
]


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(TIMESTAMP_FORMAT) if value else None


def _money(value: float) -> str:
    return f"{value:.2f}"


@dataclass
class GeneratorConfig:
    """Size and shape of a synthetic dataset"""
    n_customers: int = 800
    n_sellers: int = 60
    n_products: int = 300
    n_orders: int = 1000
    start_date: datetime = datetime(2017, 1, 1)
    end_date: datetime = datetime(2018, 8, 31)
    dirty_fraction: float = 0.0
    seed: int = 42


# =============================================================================
# GENERATOR
# =============================================================================

class RawStreamGenerator:
    """
    Generate the nine raw marketplace streams.

    Example:
        raw = RawStreamGenerator(GeneratorConfig(n_orders=200)).generate()
        orders = raw["orders"]
    """

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        self.rng = random.Random(self.config.seed)
        self.np_rng = np.random.default_rng(self.config.seed)
        self.fake = Faker("pt_BR")
        self.fake.seed_instance(self.config.seed)
        self._locations: List[Dict[str, str]] = []

    def _uid(self) -> str:
        return f"{self.rng.getrandbits(128):032x}"

    def _location(self) -> Dict[str, str]:
        state = self.rng.choices(STATES, weights=STATE_WEIGHTS)[0]
        location = {
            "zip": f"{self.rng.randint(1000, 99990):05d}",
            "city": self.fake.city().lower(),
            "state": state,
        }
        self._locations.append(location)
        return location

    def _people(self) -> List[Dict[str, str]]:
        return [{"customer_unique_id": self._uid(), **self._location()} for _ in range(self.config.n_customers)]

    def generate_sellers(self) -> pl.DataFrame:
        rows = []
        for _ in range(self.config.n_sellers):
            location = self._location()
            rows.append({
                "seller_id": self._uid(),
                "seller_zip_code_prefix": location["zip"],
                "seller_city": location["city"],
                "seller_state": location["state"],
            })
        return pl.DataFrame(rows)

    def generate_products(self) -> pl.DataFrame:
        rows = []
        for _ in range(self.config.n_products):
            category = self.rng.choice(CATEGORIES)
            rows.append({
                "product_id": self._uid(),
                "product_category_name": category[0] if self.rng.random() > 0.02 else None,
                "product_name_lenght": str(self.rng.randint(10, 70)),
                "product_description_lenght": str(self.rng.randint(50, 3000)),
                "product_photos_qty": str(self.rng.randint(1, 8)),
                "product_weight_g": str(self.rng.randint(50, 20000)),
                "product_length_cm": str(self.rng.randint(10, 100)),
                "product_height_cm": str(self.rng.randint(2, 80)),
                "product_width_cm": str(self.rng.randint(8, 90)),
            })
        return pl.DataFrame(rows)

    def generate_translation(self) -> pl.DataFrame:
        return pl.DataFrame([
            {"product_category_name": name, "product_category_name_english": english}
            for name, english, _, _ in CATEGORIES
            if english is not None
        ])

    def _order_timestamps(self, status: str) -> Dict[str, Optional[datetime]]:
        span = (self.config.end_date - self.config.start_date).total_seconds()
        purchased = self.config.start_date + timedelta(seconds=self.rng.uniform(0, span))
        approved = purchased + timedelta(hours=self.rng.uniform(0.1, 48))
        estimated = (purchased + timedelta(days=self.rng.randint(10, 35))).replace(hour=0, minute=0, second=0)

        carrier = delivered = None
        if status in ("delivered", "shipped"):
            carrier = approved + timedelta(days=self.rng.uniform(0.5, 5))
        if status == "delivered":
            delivered = purchased + timedelta(days=float(self.np_rng.gamma(3.0, 4.0)) + 1)

        return {
            "order_purchase_timestamp": purchased,
            "order_approved_at": approved if status != "created" else None,
            "order_delivered_carrier_date": carrier,
            "order_delivered_customer_date": delivered,
            "order_estimated_delivery_date": estimated,
        }

    def generate(self) -> Dict[str, pl.DataFrame]:
        """Generate every raw stream keyed by stream name"""
        cfg = self.config
        people = self._people()
        sellers = self.generate_sellers()
        products = self.generate_products()

        seller_ids = sellers["seller_id"].to_list()
        # A few sellers never sell
        active_sellers = seller_ids[: max(1, int(len(seller_ids) * 0.9))]
        price_ranges = {name: (low, high) for name, _, low, high in CATEGORIES}
        product_prices = {
            row["product_id"]: price_ranges.get(row["product_category_name"], (10, 100))
            for row in products.select(["product_id", "product_category_name"]).to_dicts()
        }
        product_ids = list(product_prices)

        customers, orders, items, payments, reviews = [], [], [], [], []
        statuses, status_weights = zip(*ORDER_STATUSES)
        payment_types, payment_weights = zip(*PAYMENT_TYPES)

        for _ in range(cfg.n_orders):
            person = self.rng.choice(people)
            customer_id = self._uid()
            order_id = self._uid()
            status = self.rng.choices(statuses, weights=status_weights)[0]
            timestamps = self._order_timestamps(status)

            customers.append({
                "customer_id": customer_id,
                "customer_unique_id": person["customer_unique_id"],
                "customer_zip_code_prefix": person["zip"],
                "customer_city": person["city"],
                "customer_state": person["state"],
            })
            orders.append({
                "order_id": order_id,
                "customer_id": customer_id,
                "order_status": status,
                **{column: _fmt(value) for column, value in timestamps.items()},
            })

            n_items = int(self.np_rng.choice([1, 2, 3, 4], p=[0.85, 0.10, 0.04, 0.01]))
            seller_id = self.rng.choice(active_sellers)
            order_total = 0.0
            for item_number in range(1, n_items + 1):
                product_id = self.rng.choice(product_ids)
                low, high = product_prices[product_id]
                price = round(self.rng.uniform(low, high), 2)
                freight = round(self.rng.uniform(5, 40), 2)
                order_total += price + freight
                items.append({
                    "order_id": order_id,
                    "order_item_id": str(item_number),
                    "product_id": product_id,
                    "seller_id": seller_id,
                    "shipping_limit_date": _fmt(timestamps["order_purchase_timestamp"] + timedelta(days=6)),
                    "price": _money(price),
                    "freight_value": _money(freight),
                })

            payment_type = self.rng.choices(payment_types, weights=payment_weights)[0]
            if payment_type == "voucher" and order_total > 20:
                voucher = round(self.rng.uniform(5, order_total / 2), 2)
                splits = [("voucher", voucher, 1), ("credit_card", round(order_total - voucher, 2), self.rng.randint(1, 10))]
            else:
                installments = self.rng.randint(1, 10) if payment_type == "credit_card" else 1
                splits = [(payment_type, round(order_total, 2), installments)]
            for sequential, (ptype, value, installments) in enumerate(splits, start=1):
                payments.append({
                    "order_id": order_id,
                    "payment_sequential": str(sequential),
                    "payment_type": ptype,
                    "payment_installments": str(installments),
                    "payment_value": _money(value),
                })

            if self.rng.random() < 0.95:
                reviews.append(self._review(order_id, timestamps))

        raw = {
            "customers": pl.DataFrame(customers),
            "orders": pl.DataFrame(orders),
            "order_items": pl.DataFrame(items),
            "order_payments": pl.DataFrame(payments),
            "order_reviews": pl.DataFrame(reviews, schema={c: pl.Utf8 for c in REVIEW_COLUMNS}),
            "products": products,
            "sellers": sellers,
            "geolocation": self.generate_geolocation(),
            "category_translation": self.generate_translation(),
        }

        raw = {name: df.select(pl.all().cast(pl.Utf8)) for name, df in raw.items()}
        if cfg.dirty_fraction > 0:
            raw = self.add_dirty_records(raw)
        logger.info("Generated raw streams", rows={name: df.height for name, df in raw.items()})
        return raw

    def _review(self, order_id: str, timestamps: Dict[str, Optional[datetime]]) -> Dict[str, Optional[str]]:
        delivered = timestamps["order_delivered_customer_date"]
        estimated = timestamps["order_estimated_delivery_date"]
        if delivered is None:
            score = self.rng.choice([1, 1, 2, 3])
        elif delivered > estimated:
            score = self.rng.choice([1, 2, 2, 3, 4])
        else:
            score = self.rng.choices([3, 4, 5], weights=[0.15, 0.25, 0.60])[0]
        created = (delivered or estimated) + timedelta(days=self.rng.randint(0, 5))
        return {
            "review_id": self._uid(),
            "order_id": order_id,
            "review_score": str(score),
            "review_comment_title": None,
            "review_comment_message": self.fake.sentence(nb_words=8) if self.rng.random() < 0.4 else None,
            "review_creation_date": _fmt(created.replace(hour=0, minute=0, second=0)),
            "review_answer_timestamp": _fmt(created + timedelta(hours=self.rng.uniform(5, 72))),
        }

    def generate_geolocation(self) -> pl.DataFrame:
        """Several coordinate samples around every generated zip prefix"""
        rows = []
        for location in self._locations:
            lat = self.rng.uniform(-33.0, -3.0)
            lng = self.rng.uniform(-60.0, -35.0)
            for _ in range(self.rng.randint(1, 3)):
                rows.append({
                    "geolocation_zip_code_prefix": location["zip"],
                    "geolocation_lat": f"{lat + self.rng.uniform(-0.01, 0.01):.6f}",
                    "geolocation_lng": f"{lng + self.rng.uniform(-0.01, 0.01):.6f}",
                    "geolocation_city": location["city"],
                    "geolocation_state": location["state"],
                })
        return pl.DataFrame(rows)

    def add_dirty_records(self, raw: Dict[str, pl.DataFrame]) -> Dict[str, pl.DataFrame]:
        """
        Inject duplicates, missing keys and unparseable values.

        Dirty rows are appended, so every clean record is still present.
        """
        dirty = dict(raw)
        fraction = self.config.dirty_fraction

        orders = raw["orders"]
        n = max(1, int(orders.height * fraction))
        duplicates = orders.sample(n, seed=self.config.seed)
        missing_key = orders.sample(n, seed=self.config.seed + 1).with_columns(
            pl.lit("  ").alias("order_id")
        )
        dirty["orders"] = pl.concat([orders, duplicates, missing_key])

        items = raw["order_items"]
        bad_prices = items.sample(max(1, int(items.height * fraction)), seed=self.config.seed).with_columns([
            pl.lit("n/a").alias("price"),
            (pl.col("order_item_id").cast(pl.Int64) + 100).cast(pl.Utf8).alias("order_item_id"),
        ])
        dirty["order_items"] = pl.concat([items, bad_prices])

        reviews = raw["order_reviews"]
        if reviews.height:
            bad_scores = reviews.sample(max(1, int(reviews.height * fraction)), seed=self.config.seed).with_columns([
                pl.lit("9").alias("review_score"),
                pl.lit("2000-01-01 00:00:00").alias("review_creation_date"),
            ])
            dirty["order_reviews"] = pl.concat([reviews, bad_scores])

        return dirty


REVIEW_COLUMNS = [
    "review_id",
    "order_id",
    "review_score",
    "review_comment_title",
    "review_comment_message",
    "review_creation_date",
    "review_answer_timestamp",
]


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class DataGenerator:
    """Generates a dataset and writes it to the raw zone"""

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = Path(output_dir or get_settings().data_lake.raw_path)

    def generate_all(self, config: Optional[GeneratorConfig] = None, save: bool = True) -> Dict[str, pl.DataFrame]:
        """Generate every raw stream, optionally saving them as CSV"""
        raw = RawStreamGenerator(config).generate()
        if save:
            write_raw_streams(raw, self.output_dir)
        return raw


def generate_raw_streams(**kwargs) -> Dict[str, pl.DataFrame]:
    """Convenience function returning raw streams for a GeneratorConfig built from kwargs"""
    return RawStreamGenerator(GeneratorConfig(**kwargs)).generate()

"""
Test Suite Configuration
"""
from typing import Dict

import polars as pl
import pytest

from ecommerce_warehouse.config import Settings
from ecommerce_warehouse.staging import RecordNormalizer


def text_frame(rows: list, columns: list) -> pl.DataFrame:
    """Raw stream DataFrame with every column as text"""
    return pl.DataFrame(rows, schema={c: pl.Utf8 for c in columns}, orient="row")


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
def raw_streams() -> Dict[str, pl.DataFrame]:
    """
    Small raw marketplace dataset.

    Customers u1 (two orders, SP) and u2 (one order, RJ); sellers s1 (sells
    in January and March), s2 (March only) and s3 (never sells). Order o4
    is a canceled February order without items whose customer is unknown.
    """
    return {
        "customers": text_frame(
            [
                ["c1", "u1", "01001", "sao paulo", "sp"],
                ["c2", "u2", "20040", "rio de janeiro", "RJ"],
                ["c3", "u1", "01001", "sao paulo", "SP"],
            ],
            ["customer_id", "customer_unique_id", "customer_zip_code_prefix", "customer_city", "customer_state"],
        ),
        "orders": text_frame(
            [
                ["o1", "c1", "delivered", "2018-01-10 10:00:00", "2018-01-10 11:00:00",
                 "2018-01-12 09:00:00", "2018-01-20 10:00:00", "2018-01-25 00:00:00"],
                ["o2", "c2", "delivered", "2018-03-05 08:00:00", "2018-03-05 09:00:00",
                 "2018-03-07 10:00:00", "2018-03-30 08:00:00", "2018-03-20 00:00:00"],
                ["o3", "c3", "shipped", "2018-03-15 12:00:00", "2018-03-15 13:00:00",
                 "2018-03-17 08:00:00", None, "2018-04-01 00:00:00"],
                ["o4", "c9", "canceled", "2018-02-20 09:00:00", None, None, None, None],
            ],
            [
                "order_id",
                "customer_id",
                "order_status",
                "order_purchase_timestamp",
                "order_approved_at",
                "order_delivered_carrier_date",
                "order_delivered_customer_date",
                "order_estimated_delivery_date",
            ],
        ),
        "order_items": text_frame(
            [
                ["o1", "1", "p1", "s1", "2018-01-16 10:00:00", "10.00", "2.00"],
                ["o1", "2", "p2", "s1", "2018-01-16 10:00:00", "15.00", "3.00"],
                ["o2", "1", "p1", "s2", "2018-03-11 08:00:00", "100.00", "20.00"],
                ["o3", "1", "p2", "s1", "2018-03-21 12:00:00", "50.00", "5.00"],
            ],
            ["order_id", "order_item_id", "product_id", "seller_id", "shipping_limit_date", "price", "freight_value"],
        ),
        "order_payments": text_frame(
            [
                ["o1", "1", "credit_card", "1", "20.00"],
                ["o1", "2", "voucher", "1", "10.00"],
                ["o2", "1", "boleto", "1", "120.00"],
                ["o3", "1", "credit_card", "3", "55.00"],
            ],
            ["order_id", "payment_sequential", "payment_type", "payment_installments", "payment_value"],
        ),
        "order_reviews": text_frame(
            [
                ["r1", "o1", "5", None, "great", "2018-01-21 00:00:00", "2018-01-22 10:00:00"],
                ["r2", "o2", "2", None, None, "2018-03-31 00:00:00", "2018-04-01 10:00:00"],
            ],
            [
                "review_id",
                "order_id",
                "review_score",
                "review_comment_title",
                "review_comment_message",
                "review_creation_date",
                "review_answer_timestamp",
            ],
        ),
        "products": text_frame(
            [
                ["p1", "beleza_saude", "40", "300", "2", "500", "20", "10", "15"],
                ["p2", "brinquedos", "35", "250", "1", "800", "30", "20", "20"],
            ],
            [
                "product_id",
                "product_category_name",
                "product_name_lenght",
                "product_description_lenght",
                "product_photos_qty",
                "product_weight_g",
                "product_length_cm",
                "product_height_cm",
                "product_width_cm",
            ],
        ),
        "sellers": text_frame(
            [
                ["s1", "01001", "sao paulo", "SP"],
                ["s2", "20040", "rio de janeiro", "RJ"],
                ["s3", "30110", "belo horizonte", "MG"],
            ],
            ["seller_id", "seller_zip_code_prefix", "seller_city", "seller_state"],
        ),
        "geolocation": text_frame(
            [
                ["01001", "-23.550000", "-46.630000", "sao paulo", "SP"],
                ["01001", "-23.552000", "-46.632000", "são paulo", "SP"],
                ["01001", "-23.554000", "-46.634000", "sao paulo", "SP"],
                ["20040", "-22.900000", "-43.170000", "rio de janeiro", "RJ"],
            ],
            ["geolocation_zip_code_prefix", "geolocation_lat", "geolocation_lng", "geolocation_city", "geolocation_state"],
        ),
        "category_translation": text_frame(
            [
                ["beleza_saude", "health_beauty"],
                ["brinquedos", "toys"],
            ],
            ["product_category_name", "product_category_name_english"],
        ),
    }


@pytest.fixture
def staging_tables(raw_streams) -> Dict[str, pl.DataFrame]:
    """Typed staging tables of the raw_streams dataset"""
    staged = RecordNormalizer().normalize_all(raw_streams)
    return {name: stream.data for name, stream in staged.items()}


@pytest.fixture
def orders_enriched(staging_tables) -> pl.DataFrame:
    """Enriched orders of the raw_streams dataset"""
    from ecommerce_warehouse.intermediate import build_orders_enriched

    return build_orders_enriched(
        staging_tables["orders"],
        staging_tables["customers"],
        staging_tables["order_items"],
        staging_tables["order_payments"],
        staging_tables["order_reviews"],
    )

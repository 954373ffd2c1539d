"""
Raw Stream Schemas

Field layout of the nine raw input streams and how each field is typed in
the staging layer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple


class FieldType(str, Enum):
    """Staging type of a raw text field"""
    TEXT = "text"
    CITY = "city"  # trimmed, title-cased
    STATE = "state"  # trimmed, upper-cased
    TIMESTAMP = "timestamp"
    INTEGER = "integer"
    DECIMAL = "decimal"
    CURRENCY = "currency"  # 2 decimal places


class StreamName(str, Enum):
    """Raw input streams"""
    CUSTOMERS = "customers"
    ORDERS = "orders"
    ORDER_ITEMS = "order_items"
    ORDER_PAYMENTS = "order_payments"
    ORDER_REVIEWS = "order_reviews"
    PRODUCTS = "products"
    SELLERS = "sellers"
    GEOLOCATION = "geolocation"
    CATEGORY_TRANSLATION = "category_translation"


@dataclass(frozen=True)
class StreamSchema:
    """Typed layout of one raw stream"""
    name: StreamName
    fields: Dict[str, FieldType]
    primary_key: Tuple[str, ...]
    renames: Dict[str, str] = field(default_factory=dict)

    @property
    def columns(self) -> List[str]:
        return list(self.fields)

    def fields_of(self, *types: FieldType) -> List[str]:
        return [name for name, ftype in self.fields.items() if ftype in types]


ORDER_STATUSES = [
    "created",
    "approved",
    "invoiced",
    "processing",
    "shipped",
    "delivered",
    "canceled",
    "unavailable",
]


SCHEMAS: Dict[StreamName, StreamSchema] = {
    StreamName.CUSTOMERS: StreamSchema(
        name=StreamName.CUSTOMERS,
        fields={
            "customer_id": FieldType.TEXT,
            "customer_unique_id": FieldType.TEXT,
            "customer_zip_code_prefix": FieldType.TEXT,
            "customer_city": FieldType.CITY,
            "customer_state": FieldType.STATE,
        },
        primary_key=("customer_id",),
    ),
    StreamName.ORDERS: StreamSchema(
        name=StreamName.ORDERS,
        fields={
            "order_id": FieldType.TEXT,
            "customer_id": FieldType.TEXT,
            "order_status": FieldType.TEXT,
            "order_purchase_timestamp": FieldType.TIMESTAMP,
            "order_approved_at": FieldType.TIMESTAMP,
            "order_delivered_carrier_date": FieldType.TIMESTAMP,
            "order_delivered_customer_date": FieldType.TIMESTAMP,
            "order_estimated_delivery_date": FieldType.TIMESTAMP,
        },
        primary_key=("order_id",),
    ),
    StreamName.ORDER_ITEMS: StreamSchema(
        name=StreamName.ORDER_ITEMS,
        fields={
            "order_id": FieldType.TEXT,
            "order_item_id": FieldType.INTEGER,
            "product_id": FieldType.TEXT,
            "seller_id": FieldType.TEXT,
            "shipping_limit_date": FieldType.TIMESTAMP,
            "price": FieldType.CURRENCY,
            "freight_value": FieldType.CURRENCY,
        },
        primary_key=("order_id", "order_item_id"),
    ),
    StreamName.ORDER_PAYMENTS: StreamSchema(
        name=StreamName.ORDER_PAYMENTS,
        fields={
            "order_id": FieldType.TEXT,
            "payment_sequential": FieldType.INTEGER,
            "payment_type": FieldType.TEXT,
            "payment_installments": FieldType.INTEGER,
            "payment_value": FieldType.CURRENCY,
        },
        primary_key=("order_id", "payment_sequential"),
    ),
    StreamName.ORDER_REVIEWS: StreamSchema(
        name=StreamName.ORDER_REVIEWS,
        fields={
            "review_id": FieldType.TEXT,
            "order_id": FieldType.TEXT,
            "review_score": FieldType.INTEGER,
            "review_comment_title": FieldType.TEXT,
            "review_comment_message": FieldType.TEXT,
            "review_creation_date": FieldType.TIMESTAMP,
            "review_answer_timestamp": FieldType.TIMESTAMP,
        },
        primary_key=("order_id",),
    ),
    StreamName.PRODUCTS: StreamSchema(
        name=StreamName.PRODUCTS,
        fields={
            "product_id": FieldType.TEXT,
            "product_category_name": FieldType.TEXT,
            # Olist ships these two columns misspelled
            "product_name_lenght": FieldType.INTEGER,
            "product_description_lenght": FieldType.INTEGER,
            "product_photos_qty": FieldType.INTEGER,
            "product_weight_g": FieldType.DECIMAL,
            "product_length_cm": FieldType.DECIMAL,
            "product_height_cm": FieldType.DECIMAL,
            "product_width_cm": FieldType.DECIMAL,
        },
        primary_key=("product_id",),
        renames={
            "product_name_lenght": "product_name_length",
            "product_description_lenght": "product_description_length",
        },
    ),
    StreamName.SELLERS: StreamSchema(
        name=StreamName.SELLERS,
        fields={
            "seller_id": FieldType.TEXT,
            "seller_zip_code_prefix": FieldType.TEXT,
            "seller_city": FieldType.CITY,
            "seller_state": FieldType.STATE,
        },
        primary_key=("seller_id",),
    ),
    StreamName.GEOLOCATION: StreamSchema(
        name=StreamName.GEOLOCATION,
        fields={
            "geolocation_zip_code_prefix": FieldType.TEXT,
            "geolocation_lat": FieldType.DECIMAL,
            "geolocation_lng": FieldType.DECIMAL,
            "geolocation_city": FieldType.CITY,
            "geolocation_state": FieldType.STATE,
        },
        primary_key=("geolocation_zip_code_prefix",),
    ),
    StreamName.CATEGORY_TRANSLATION: StreamSchema(
        name=StreamName.CATEGORY_TRANSLATION,
        fields={
            "product_category_name": FieldType.TEXT,
            "product_category_name_english": FieldType.TEXT,
        },
        primary_key=("product_category_name",),
    ),
}

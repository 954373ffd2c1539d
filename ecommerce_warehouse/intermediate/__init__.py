"""
Intermediate Layer Module
"""
from .enrichment import DeliveryStatus, OrderEnricher, build_orders_enriched
from .performance import (
    build_customer_history,
    build_product_performance,
    build_seller_performance,
)
from .seller_history import (
    OPEN_ENDED,
    SellerHistoryBuilder,
    SellerStatus,
    build_seller_status_history,
    seller_status_as_of,
)

__all__ = [
    "DeliveryStatus",
    "OrderEnricher",
    "build_orders_enriched",
    "build_customer_history",
    "build_product_performance",
    "build_seller_performance",
    "OPEN_ENDED",
    "SellerHistoryBuilder",
    "SellerStatus",
    "build_seller_status_history",
    "seller_status_as_of",
]

"""
Warehouse Transformation Module
"""
from .transformers import Layer, LayerResult, WarehouseTransformer

__all__ = [
    "Layer",
    "LayerResult",
    "WarehouseTransformer",
]

"""
E-Commerce Warehouse Pipeline

Layered batch transformation of raw marketplace records into staging,
intermediate and mart tables.
"""

__version__ = "1.0.0"

"""
Data Generation Module
"""
from .generators import DataGenerator, GeneratorConfig, RawStreamGenerator, generate_raw_streams

__all__ = [
    "DataGenerator",
    "GeneratorConfig",
    "RawStreamGenerator",
    "generate_raw_streams",
]

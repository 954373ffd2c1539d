"""
Staging Layer Module
"""
from .normalizer import NormalizedStream, RecordIssue, RecordNormalizer
from .schemas import SCHEMAS, FieldType, StreamName, StreamSchema

__all__ = [
    "NormalizedStream",
    "RecordIssue",
    "RecordNormalizer",
    "SCHEMAS",
    "FieldType",
    "StreamName",
    "StreamSchema",
]

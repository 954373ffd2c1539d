"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_intermediate_validators,
    create_mart_validator,
    create_seller_history_validator,
    create_staging_validators,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_staging_validators",
    "create_intermediate_validators",
    "create_seller_history_validator",
    "create_mart_validator",
]

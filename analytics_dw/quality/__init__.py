"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationStatus,
    create_staged_sales_validator,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationStatus",
    "create_staged_sales_validator",
]

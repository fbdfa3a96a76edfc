"""
Data Ingestion Module
"""
from .staging_loader import FileFormat, StagingLoader, StagingLoadResult
from .seed import seed_dim_date, seed_dimensions

__all__ = [
    "FileFormat",
    "StagingLoader",
    "StagingLoadResult",
    "seed_dim_date",
    "seed_dimensions",
]

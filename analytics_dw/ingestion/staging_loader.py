"""
Staging Loader

Batch ingestion of raw sales extracts into stg_sales_raw.
Supports:
- CSV, JSON, JSON Lines and Parquet input
- Required column verification
- String trimming and removal of fully empty rows
- Dead-letter Parquet files for rows missing key fields
- Batch validation report (blocking in strict mode)
- Chunked inserts with source file lineage
"""

import hashlib
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.config import get_settings
from analytics_dw.database.models import StagingSale
from analytics_dw.exceptions import StagingSchemaError
from analytics_dw.quality.validators import (
    STAGED_SALES_COLUMNS,
    ValidationStatus,
    create_staged_sales_validator,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

# Columns that must be present on every row for it to be staged
KEY_FIELDS = [
    "transaction_id",
    "order_date",
    "customer_id",
    "product_id",
    "location_id",
    "quantity",
    "unit_price",
    "total_amount",
]

TEXT_COLUMNS = [
    "transaction_id",
    "customer_id",
    "product_id",
    "location_id",
    "order_number",
    "payment_method",
    "shipping_method",
]
MONEY_COLUMNS = ["unit_price", "discount_amount", "tax_amount", "total_amount"]
OPTIONAL_MONEY_COLUMNS = ["discount_amount", "tax_amount"]

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]
CENT = Decimal("0.01")


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"

    @classmethod
    def from_path(cls, file_path: Union[str, Path]) -> "FileFormat":
        suffix = Path(file_path).suffix.lstrip(".").lower()
        if suffix == "ndjson":
            return cls.JSONL
        try:
            return cls(suffix)
        except ValueError:
            raise ValueError(f"Unsupported file format: {suffix or file_path}")


class LoadStatus(str, Enum):
    """Staging load status"""
    COMPLETED = "completed"
    PARTIAL = "partial"  # Some rows went to the dead-letter file
    REJECTED = "rejected"  # Strict validation blocked the file


class StagingLoadResult(BaseModel):
    """Result of staging one file"""
    file_path: str
    status: LoadStatus
    rows_read: int = 0
    rows_staged: int = 0
    rows_dead_lettered: int = 0
    validation_status: Optional[ValidationStatus] = None
    dead_letter_file: Optional[str] = None
    file_hash: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class StagingLoader:
    """
    Loads raw sales extracts into the staging table.

    Example:
        loader = StagingLoader()
        async with get_db() as db:
            result = await loader.stage_file(db, "data/staging/sales_2024_03.csv")
    """

    def __init__(
        self,
        enable_validation: Optional[bool] = None,
        strict_mode: Optional[bool] = None,
        dead_letter_path: Optional[Union[str, Path]] = None,
        chunk_size: Optional[int] = None,
    ):
        if enable_validation is None:
            enable_validation = settings.data_quality.enable_data_quality_checks
        if strict_mode is None:
            strict_mode = settings.data_quality.strict
        self.enable_validation = enable_validation
        self.strict_mode = strict_mode
        self.dead_letter_path = Path(dead_letter_path or settings.data_lake.dead_letter_path)
        self.chunk_size = chunk_size or settings.etl.load_chunk_size

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for lineage"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_file(self, file_path: Path, file_format: FileFormat) -> pl.DataFrame:
        """Read file based on format"""
        if file_format == FileFormat.CSV:
            # Everything as text; typing happens in _coerce_types
            return pl.read_csv(file_path, infer_schema_length=0, null_values=NULL_VALUES)
        if file_format == FileFormat.JSON:
            return pl.read_json(file_path)
        if file_format == FileFormat.JSONL:
            return pl.read_ndjson(file_path)
        return pl.read_parquet(file_path)

    def _check_columns(self, df: pl.DataFrame) -> None:
        missing = [c for c in STAGED_SALES_COLUMNS if c not in df.columns]
        if missing:
            raise StagingSchemaError([f"Missing column: {c}" for c in missing])

    def _clean_data(self, df: pl.DataFrame) -> pl.DataFrame:
        """Trim strings and drop rows with no values at all"""
        string_columns = [name for name, dtype in df.schema.items() if dtype == pl.Utf8]
        if string_columns:
            df = df.with_columns([
                pl.when(pl.col(c).str.strip_chars() == "")
                .then(None)
                .otherwise(pl.col(c).str.strip_chars())
                .alias(c)
                for c in string_columns
            ])

        return df.filter(~pl.all_horizontal(pl.all().is_null()))

    def _coerce_types(self, df: pl.DataFrame) -> pl.DataFrame:
        """Cast staged columns to their load types; unparseable values become null"""
        if "shipping_method" not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=pl.Utf8).alias("shipping_method"))

        order_date = df.schema["order_date"]
        if order_date == pl.Utf8:
            date_expr = pl.col("order_date").str.strptime(pl.Date, "%Y-%m-%d", strict=False)
        elif isinstance(order_date, pl.Datetime):
            date_expr = pl.col("order_date").dt.date()
        else:
            date_expr = pl.col("order_date").cast(pl.Date, strict=False)

        return df.with_columns(
            [date_expr.alias("order_date")]
            + [pl.col(c).cast(pl.Utf8) for c in TEXT_COLUMNS]
            + [pl.col("quantity").cast(pl.Int64, strict=False)]
            + [pl.col(c).cast(pl.Float64, strict=False) for c in MONEY_COLUMNS]
        ).with_columns(
            [pl.col(c).fill_null(0.0) for c in OPTIONAL_MONEY_COLUMNS]
        )

    def _split_incomplete(self, df: pl.DataFrame):
        """Separate rows missing a key field"""
        incomplete = pl.any_horizontal([pl.col(c).is_null() for c in KEY_FIELDS])
        return df.filter(~incomplete), df.filter(incomplete)

    def _write_to_dead_letter(self, df: pl.DataFrame, file_path: Path, error: str) -> Path:
        """Write rejected records to a dead-letter Parquet file"""
        self.dead_letter_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        dead_letter_file = self.dead_letter_path / f"{file_path.stem}_{timestamp}.parquet"

        df = df.with_columns([
            pl.lit(error).alias("_error_message"),
            pl.lit(datetime.utcnow()).alias("_failed_at"),
        ])
        df.write_parquet(dead_letter_file)

        logger.warning(
            "Written failed records to dead letter queue",
            file=str(dead_letter_file),
            records=len(df),
        )
        return dead_letter_file

    def _to_records(self, df: pl.DataFrame, source_file: str) -> List[Dict[str, Any]]:
        """Staging table rows with exact decimal amounts"""
        loaded_at = datetime.utcnow()
        columns = STAGED_SALES_COLUMNS + ["shipping_method"]
        records = []
        for row in df.select(columns).iter_rows(named=True):
            for name in MONEY_COLUMNS:
                row[name] = Decimal(str(row[name])).quantize(CENT)
            row["source_file"] = source_file
            row["loaded_at"] = loaded_at
            records.append(row)
        return records

    async def _insert_records(self, db: AsyncSession, records: List[Dict[str, Any]]) -> int:
        """Chunked insert into stg_sales_raw"""
        total_inserted = 0
        for i in range(0, len(records), self.chunk_size):
            chunk = records[i:i + self.chunk_size]
            await db.execute(insert(StagingSale), chunk)
            total_inserted += len(chunk)
        await db.flush()
        return total_inserted

    async def stage_file(
        self,
        db: AsyncSession,
        file_path: Union[str, Path],
        file_format: Optional[FileFormat] = None,
    ) -> StagingLoadResult:
        """
        Stage one sales extract.

        Args:
            db: Session of the enclosing unit of work
            file_path: Extract to read
            file_format: Format override; inferred from the suffix by default

        Returns:
            StagingLoadResult: Row counts and where rejected rows went

        Raises:
            FileNotFoundError: The file does not exist
            StagingSchemaError: Required columns are missing
        """
        file_path = Path(file_path)
        file_format = file_format or FileFormat.from_path(file_path)
        result = StagingLoadResult(
            file_path=str(file_path),
            status=LoadStatus.COMPLETED,
            started_at=datetime.utcnow(),
        )

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        logger.info("Staging file", file=str(file_path), format=file_format.value)
        result.file_hash = self._compute_file_hash(file_path)

        df = self._read_file(file_path, file_format)
        self._check_columns(df)

        df = self._clean_data(df)
        result.rows_read = len(df)

        df = self._coerce_types(df)
        df, incomplete = self._split_incomplete(df)

        if len(incomplete) > 0:
            dead_letter_file = self._write_to_dead_letter(
                incomplete, file_path, f"Missing one of the key fields {KEY_FIELDS}"
            )
            result.rows_dead_lettered = len(incomplete)
            result.dead_letter_file = str(dead_letter_file)
            result.status = LoadStatus.PARTIAL

        if self.enable_validation:
            validation = create_staged_sales_validator(self.strict_mode).validate(df)
            result.validation_status = validation.status
            if self.strict_mode and validation.status == ValidationStatus.FAILED:
                logger.error(
                    "Staging blocked by validation",
                    file=str(file_path),
                    failures=[c.name for c in validation.failures],
                )
                result.status = LoadStatus.REJECTED
                result.completed_at = datetime.utcnow()
                return result

        result.rows_staged = await self._insert_records(db, self._to_records(df, str(file_path)))
        result.completed_at = datetime.utcnow()

        logger.info(
            "File staged",
            file=str(file_path),
            rows_staged=result.rows_staged,
            rows_dead_lettered=result.rows_dead_lettered,
        )
        return result

    async def stage_directory(
        self,
        db: AsyncSession,
        directory: Union[str, Path],
        file_format: FileFormat = FileFormat.CSV,
        pattern: str = "*",
    ) -> List[StagingLoadResult]:
        """
        Stage all matching files from a directory, in name order.

        Args:
            db: Session of the enclosing unit of work
            directory: Directory containing extracts
            file_format: File format to process
            pattern: Glob pattern for file matching
        """
        directory = Path(directory)
        files = sorted(directory.glob(f"{pattern}.{file_format.value}"))

        logger.info(
            f"Found {len(files)} files to stage",
            directory=str(directory),
            pattern=pattern,
        )

        results = []
        for file_path in files:
            results.append(await self.stage_file(db, file_path, file_format))

        logger.info(
            "Directory staged",
            total_files=len(files),
            rows_staged=sum(r.rows_staged for r in results),
        )
        return results

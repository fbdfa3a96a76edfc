"""
ETL Run Logger

Appends one etl_log entry per pipeline invocation. A SUCCESS entry is written
through the operation's own session so it commits or rolls back together with
the data it describes.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_dw.database.models import EtlLog, RunStatus

logger = structlog.get_logger(__name__)


async def log_run(
    db: AsyncSession,
    process_name: str,
    start_time: datetime,
    rows_processed: int,
    status: RunStatus = RunStatus.SUCCESS,
    error_message: Optional[str] = None,
) -> EtlLog:
    """
    Append a run log entry.

    Args:
        db: Session of the operation being logged
        process_name: Name of the pipeline step
        start_time: When the step started
        rows_processed: Rows affected by the step
        status: Outcome of the step
        error_message: Failure description, if any

    Returns:
        EtlLog: The pending log entry
    """
    entry = EtlLog(
        process_name=process_name,
        start_time=start_time,
        end_time=datetime.utcnow(),
        rows_processed=rows_processed,
        status=status,
        error_message=error_message,
    )
    db.add(entry)
    await db.flush()

    logger.info(
        "ETL run logged",
        process=process_name,
        status=status.value,
        rows=rows_processed,
    )
    return entry


async def recent_runs(
    db: AsyncSession,
    process_name: Optional[str] = None,
    limit: int = 20,
) -> List[EtlLog]:
    """Latest run log entries, newest first"""
    query = select(EtlLog).order_by(EtlLog.log_id.desc()).limit(limit)
    if process_name:
        query = query.where(EtlLog.process_name == process_name)
    result = await db.execute(query)
    return list(result.scalars().all())

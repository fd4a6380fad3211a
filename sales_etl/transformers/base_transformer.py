"""
Base transformer class for ETL operations.

This module provides the abstract base class for all star-schema
transformers, implementing the staging extraction, batch tracking and
error handling they have in common.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, TypeVar, Generic, Sequence
import uuid

import pandas as pd
import structlog

from sales_etl.errors import StagingUnavailableError
from sales_etl.models import ETLBatch
from shared.database import DatabaseManager, STAGING_MODELS, model_columns

logger = structlog.get_logger(__name__)

T = TypeVar('T')

StagingData = Dict[str, List[Dict[str, Any]]]


def fetch_required_staging(
    db_manager: Optional[DatabaseManager],
    table_names: Sequence[str],
    batch_id: Optional[str] = None
) -> StagingData:
    """
    Read staging tables in full, keyed by table name.

    Raises:
        StagingUnavailableError: If a table is missing or empty
    """
    if db_manager is None:
        raise RuntimeError("No database manager to extract staging from")

    source_data: StagingData = {}
    for table_name in table_names:
        if not db_manager.table_exists(table_name):
            raise StagingUnavailableError(table_name, "missing")
        rows = db_manager.fetch_rows(STAGING_MODELS[table_name])
        if not rows:
            raise StagingUnavailableError(table_name, "empty")
        source_data[table_name] = rows
        logger.info("Extracted staging data",
                    table=table_name,
                    count=len(rows),
                    batch_id=batch_id)

    return source_data


class BaseTransformer(ABC, Generic[T]):
    """
    Abstract base class for all ETL transformers.

    Provides common functionality for:
    - Reading complete staging tables
    - Batch tracking
    - Error handling

    Transformers only compute records; writing them is left to the
    warehouse loader so that a rebuild replaces every table at once.
    """

    table_name: str = ""
    required_tables: Sequence[str] = ()

    def __init__(self, db_manager: Optional[DatabaseManager] = None, batch_id: Optional[str] = None):
        """Initialize transformer with batch tracking."""
        self.db_manager = db_manager
        self.batch_id = batch_id or self._generate_batch_id()
        self.batch_start_time = datetime.now(timezone.utc)
        self.records_processed = 0
        self.records_emitted = 0
        self.records_dropped = 0
        self.errors: List[str] = []
        self.details: Dict[str, Any] = {}

    def _generate_batch_id(self) -> str:
        """Generate unique batch ID."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        unique_id = str(uuid.uuid4())[:8]
        return f"{self.__class__.__name__}_{timestamp}_{unique_id}"

    def extract(self, **kwargs) -> StagingData:
        """
        Extract every required staging table in full.

        Returns:
            Staging rows keyed by staging table name

        Raises:
            StagingUnavailableError: If a required table is missing or empty
        """
        return fetch_required_staging(self.db_manager, self.required_tables, self.batch_id)

    @abstractmethod
    def transform(self, source_data: StagingData) -> List[T]:
        """Transform staging data to dimensional model."""
        pass

    def build(self, source_data: Optional[StagingData] = None) -> List[T]:
        """
        Extract (unless staging rows are given) and transform.

        Errors are logged with the batch context and re-raised; a rebuild
        never continues past a failed transformer.
        """
        try:
            logger.info("Starting transformation",
                        transformer=self.__class__.__name__,
                        table=self.table_name,
                        batch_id=self.batch_id)

            if source_data is None:
                source_data = self.extract()

            for table_name in self.required_tables:
                self.require_rows(source_data, table_name)

            records = self.transform(source_data)
            self.records_emitted = len(records)

            logger.info("Transformation completed",
                        table=self.table_name,
                        batch_id=self.batch_id,
                        records_processed=self.records_processed,
                        records_emitted=self.records_emitted,
                        records_dropped=self.records_dropped)

            return records

        except Exception as e:
            logger.error("Transformation failed",
                         table=self.table_name,
                         batch_id=self.batch_id,
                         error=str(e))
            self.errors.append(str(e))
            raise

    def batch_summary(self, status: str) -> ETLBatch:
        """Create batch execution summary."""
        return ETLBatch(
            batch_id=self.batch_id,
            batch_type="FULL",
            table_name=self.table_name,
            start_time=self.batch_start_time,
            end_time=datetime.now(timezone.utc),
            status=status,
            records_processed=self.records_processed,
            records_emitted=self.records_emitted,
            records_dropped=self.records_dropped,
            error_message="; ".join(self.errors) if self.errors else None,
            details=dict(self.details)
        )

    def require_rows(self, source_data: StagingData, table_name: str) -> List[Dict[str, Any]]:
        """Return the rows of a staging table, failing if there are none."""
        rows = source_data.get(table_name)
        if rows is None:
            raise StagingUnavailableError(table_name, "missing")
        if len(rows) == 0:
            raise StagingUnavailableError(table_name, "empty")
        return rows

    def to_frame(self, rows: List[Dict[str, Any]], table_name: str) -> pd.DataFrame:
        """
        Build an object-typed DataFrame for a staging table.

        Object dtype keeps Python ints and Decimals intact so joins and
        arithmetic never go through float.
        """
        columns = model_columns(STAGING_MODELS[table_name])
        frame = pd.DataFrame(rows, columns=columns, dtype=object)
        return frame.where(frame.notna(), None)

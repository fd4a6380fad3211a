"""
Time dimension transformer for ETL operations.

This module derives the DimTime table from the raw order timestamps in
staging: one row per distinct normalized order date.
"""

from typing import List, Optional

import structlog

from sales_etl.errors import MalformedDateError
from sales_etl.models import DimTime
from sales_etl.transformers.base_transformer import BaseTransformer, StagingData
from sales_etl.transformers.date_normalizer import normalize_order_date, try_normalize_order_date
from shared.database import DatabaseManager

logger = structlog.get_logger(__name__)

ORDERS_TABLE = "orders_staging"


class TimeDimensionTransformer(BaseTransformer[DimTime]):
    """
    Transformer for the time dimension table.

    Every order's raw timestamp is normalized; a malformed one fails the
    whole build and names the order it came from.
    """

    table_name = "dim_time"
    required_tables = (ORDERS_TABLE,)

    def __init__(self, db_manager: Optional[DatabaseManager] = None, batch_id: Optional[str] = None):
        """Initialize time dimension transformer."""
        super().__init__(db_manager, batch_id)

    def transform(self, source_data: StagingData) -> List[DimTime]:
        """
        Transform order timestamps to time dimension records.

        Args:
            source_data: Staging rows; only orders_staging is read

        Returns:
            List of DimTime records, one per distinct date, sorted by date

        Raises:
            MalformedDateError: If any order timestamp cannot be normalized
        """
        orders = self.require_rows(source_data, ORDERS_TABLE)
        self.records_processed = len(orders)

        distinct_dates = set()
        for order in orders:
            result = try_normalize_order_date(order.get('order_date_raw'), record_key=order.get('id'))
            if isinstance(result, MalformedDateError):
                logger.error("Malformed order date",
                             order_id=order.get('id'),
                             raw_value=result.raw_value,
                             batch_id=self.batch_id)
                raise result
            distinct_dates.add(result.order_date)

        # Attributes are recomputed from each distinct key, not carried through the dedup
        dim_time = [
            DimTime.from_normalized(normalize_order_date(order_date))
            for order_date in sorted(distinct_dates)
        ]

        self.details['duplicate_dates_collapsed'] = self.records_processed - len(dim_time)

        logger.info("Transformed time dimension",
                    orders=self.records_processed,
                    distinct_dates=len(dim_time),
                    batch_id=self.batch_id)

        return dim_time

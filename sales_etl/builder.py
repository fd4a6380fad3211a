"""
Warehouse builder.

Runs every star-schema transformer against one consistent read of the
staging tables and assembles the results into a WarehouseBuild. Nothing is
written here; a build either completes in full or raises.
"""

from datetime import datetime, timezone
from typing import List, Optional
import uuid

import structlog

from sales_etl.models import WarehouseBuild
from sales_etl.transformers.base_transformer import BaseTransformer, StagingData, fetch_required_staging
from sales_etl.transformers.dimension_transformer import build_dimension_transformers
from sales_etl.transformers.sales_fact_transformer import SalesFactTransformer
from sales_etl.transformers.time_dimension_transformer import TimeDimensionTransformer
from shared.database import DatabaseManager

logger = structlog.get_logger(__name__)


class WarehouseBuilder:
    """Computes all dimension and fact tables from staging."""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        batch_id: Optional[str] = None,
        null_key_policy: Optional[str] = None
    ):
        """Initialize the builder and its transformers."""
        self.db_manager = db_manager
        self.batch_id = batch_id or self._generate_batch_id()

        self.dimension_transformers = build_dimension_transformers(
            db_manager, batch_id=self.batch_id, null_key_policy=null_key_policy
        )
        self.time_transformer = TimeDimensionTransformer(
            db_manager, batch_id=f"{self.batch_id}_dim_time"
        )
        self.fact_transformer = SalesFactTransformer(
            db_manager, batch_id=f"{self.batch_id}_sales_fact"
        )

    def _generate_batch_id(self) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        return f"rebuild_{timestamp}_{str(uuid.uuid4())[:8]}"

    @property
    def transformers(self) -> List[BaseTransformer]:
        return [*self.dimension_transformers, self.time_transformer, self.fact_transformer]

    @property
    def required_tables(self) -> List[str]:
        required = []
        for transformer in self.transformers:
            for table_name in transformer.required_tables:
                if table_name not in required:
                    required.append(table_name)
        return required

    def extract_staging(self) -> StagingData:
        """
        Read every staging table the transformers need, once.

        Raises:
            StagingUnavailableError: If a required table is missing or empty
        """
        source_data = fetch_required_staging(self.db_manager, self.required_tables, self.batch_id)

        logger.info("Extracted staging tables",
                    tables=self.required_tables,
                    batch_id=self.batch_id)

        return source_data

    def build(self, source_data: Optional[StagingData] = None) -> WarehouseBuild:
        """
        Compute every dimension and the fact table.

        Args:
            source_data: Staging rows by table; read from the database when
                omitted

        Returns:
            WarehouseBuild holding all output tables and per-line outcomes
        """
        if source_data is None:
            source_data = self.extract_staging()

        dimensions = {
            transformer.table_name: transformer.build(source_data)
            for transformer in self.dimension_transformers
        }
        dim_time = self.time_transformer.build(source_data)
        sales_fact = self.fact_transformer.build(source_data)

        batches = [transformer.batch_summary("SUCCESS") for transformer in self.transformers]

        build = WarehouseBuild(
            batch_id=self.batch_id,
            dim_customer=dimensions["dim_customer"],
            dim_product=dimensions["dim_product"],
            dim_supplier=dimensions["dim_supplier"],
            dim_category=dimensions["dim_category"],
            dim_time=dim_time,
            sales_fact=sales_fact,
            line_outcomes=list(self.fact_transformer.line_outcomes),
            batches=batches
        )

        logger.info("Warehouse build computed",
                    batch_id=self.batch_id,
                    facts=len(sales_fact),
                    dropped_order_lines=len(build.unmatched_lines),
                    dim_time=len(dim_time))

        return build

"""
Warehouse loader for the star schema.

Writes a complete WarehouseBuild over the six dimension and fact tables in a
single transaction, so readers see either the previous run's output or the
new one, never a mix.
"""

from typing import Dict, Optional

import structlog

from sales_etl.models import WarehouseBuild
from shared.database import DatabaseManager, WAREHOUSE_MODELS

logger = structlog.get_logger(__name__)


class WarehouseLoader:
    """Replaces warehouse tables with a freshly computed build."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize warehouse loader."""
        self.db_manager = db_manager

    def ensure_tables(self):
        """Create any missing warehouse table."""
        self.db_manager.create_tables(list(WAREHOUSE_MODELS))

    def replace_all(self, build: WarehouseBuild) -> Dict[str, int]:
        """
        Replace every warehouse table with the rows of a build.

        Args:
            build: Fully computed dimensions and facts

        Returns:
            Rows written per table
        """
        self.ensure_tables()
        tables = build.tables()
        written: Dict[str, int] = {}

        try:
            with self.db_manager.session_scope() as session:
                for table_name, model in WAREHOUSE_MODELS.items():
                    written[table_name] = self.db_manager.replace_rows(
                        session, model, tables[table_name]
                    )

            logger.info("Warehouse tables replaced",
                        batch_id=build.batch_id,
                        rows=written)

            return written

        except Exception as e:
            logger.error("Failed to replace warehouse tables, previous output kept",
                         batch_id=build.batch_id,
                         error=str(e))
            raise

    def row_counts(self) -> Dict[str, Optional[int]]:
        """Current row count per warehouse table, None for absent tables."""
        counts: Dict[str, Optional[int]] = {}
        for table_name, model in WAREHOUSE_MODELS.items():
            if not self.db_manager.table_exists(table_name):
                counts[table_name] = None
                continue
            counts[table_name] = self.db_manager.count_rows(model)
        return counts

"""
Dimension projectors for ETL operations.

Customer, product, supplier and category dimensions are one-to-one
projections of their staging tables under a fixed column rename map.
"""

from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Type

import structlog

from sales_etl.models import DimCustomer, DimProduct, DimSupplier, DimCategory
from sales_etl.transformers.base_transformer import BaseTransformer, StagingData
from shared.config import settings
from shared.database import DatabaseManager

logger = structlog.get_logger(__name__)

PASS_THROUGH = "pass_through"
REJECT = "reject"


@dataclass(frozen=True)
class DimensionMapping:
    """How a staging table projects onto a dimension table."""
    table_name: str
    staging_table: str
    record_class: Type
    key_field: str
    renames: Dict[str, str]  # staging column -> dimension column


CUSTOMER_MAPPING = DimensionMapping(
    table_name="dim_customer",
    staging_table="customers_staging",
    record_class=DimCustomer,
    key_field="customer_id",
    renames={
        'id': 'customer_id',
        'name': 'customer_name',
        'contact': 'contact_name',
        'address': 'address',
        'city': 'city',
        'postal_code': 'postal_code',
        'country': 'country',
    }
)

PRODUCT_MAPPING = DimensionMapping(
    table_name="dim_product",
    staging_table="products_staging",
    record_class=DimProduct,
    key_field="product_id",
    renames={
        'id': 'product_id',
        'name': 'product_name',
        'supplier_id': 'supplier_id',
        'category_id': 'category_id',
        'unit': 'unit',
        'price': 'price',
    }
)

SUPPLIER_MAPPING = DimensionMapping(
    table_name="dim_supplier",
    staging_table="suppliers_staging",
    record_class=DimSupplier,
    key_field="supplier_id",
    renames={
        'id': 'supplier_id',
        'name': 'supplier_name',
        'contact': 'contact_name',
        'address': 'address',
        'city': 'city',
        'postal_code': 'postal_code',
        'country': 'country',
        'phone': 'phone',
    }
)

CATEGORY_MAPPING = DimensionMapping(
    table_name="dim_category",
    staging_table="categories_staging",
    record_class=DimCategory,
    key_field="category_id",
    renames={
        'id': 'category_id',
        'name': 'category_name',
        'description': 'description',
    }
)

DIMENSION_MAPPINGS = (CUSTOMER_MAPPING, PRODUCT_MAPPING, SUPPLIER_MAPPING, CATEGORY_MAPPING)


class DimensionTransformer(BaseTransformer):
    """
    Projects one staging table into its dimension table.

    Each staging row yields exactly one dimension row. Null and duplicate
    natural keys are counted; with the ``reject`` key policy rows without a
    natural key are left out of the dimension.
    """

    def __init__(
        self,
        mapping: DimensionMapping,
        db_manager: Optional[DatabaseManager] = None,
        batch_id: Optional[str] = None,
        null_key_policy: Optional[str] = None
    ):
        """Initialize dimension transformer for one mapping."""
        super().__init__(db_manager, batch_id)
        self.mapping = mapping
        self.table_name = mapping.table_name
        self.required_tables = (mapping.staging_table,)
        self.null_key_policy = (null_key_policy or settings.NULL_KEY_POLICY).lower()
        if self.null_key_policy not in (PASS_THROUGH, REJECT):
            raise ValueError(f"Unsupported null key policy: {self.null_key_policy}")

    def transform(self, source_data: StagingData) -> List[Any]:
        """
        Rename staging columns into dimension records.

        Args:
            source_data: Staging rows; only the mapped staging table is read

        Returns:
            List of dimension records
        """
        rows = self.require_rows(source_data, self.mapping.staging_table)
        self.records_processed = len(rows)

        frame = self.to_frame(rows, self.mapping.staging_table)
        frame = frame[list(self.mapping.renames)].rename(columns=self.mapping.renames)

        key = self.mapping.key_field
        null_keys = frame[key].isna()
        duplicate_keys = frame[key].notna() & frame.duplicated(subset=[key], keep='first')

        self.details['null_keys'] = int(null_keys.sum())
        self.details['duplicate_keys'] = int(duplicate_keys.sum())

        if self.details['null_keys']:
            logger.warning("Staging rows without natural key",
                           table=self.table_name,
                           count=self.details['null_keys'],
                           policy=self.null_key_policy,
                           batch_id=self.batch_id)
            if self.null_key_policy == REJECT:
                frame = frame[~null_keys]
                self.records_dropped = self.details['null_keys']

        if self.details['duplicate_keys']:
            logger.warning("Duplicate natural keys passed through",
                           table=self.table_name,
                           count=self.details['duplicate_keys'],
                           batch_id=self.batch_id)

        records = [
            self.mapping.record_class(**{column: _none_if_missing(value) for column, value in row.items()})
            for row in frame.to_dict('records')
        ]

        logger.info("Projected dimension",
                    table=self.table_name,
                    count=len(records),
                    batch_id=self.batch_id)

        return records


def _none_if_missing(value: Any) -> Any:
    """Object frames may still hold NaN for absent values."""
    if isinstance(value, float) and value != value:
        return None
    return value


def build_dimension_transformers(
    db_manager: Optional[DatabaseManager] = None,
    batch_id: Optional[str] = None,
    null_key_policy: Optional[str] = None
) -> List[DimensionTransformer]:
    """One projector per dimension mapping."""
    return [
        DimensionTransformer(
            mapping,
            db_manager,
            batch_id=f"{batch_id}_{mapping.table_name}" if batch_id else None,
            null_key_policy=null_key_policy
        )
        for mapping in DIMENSION_MAPPINGS
    ]

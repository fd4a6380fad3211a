"""
Data models for ETL transformations and dimensional modeling.

This module defines the structure of the fact and dimension tables of the
sales star schema, plus the bookkeeping records produced by a rebuild.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field, asdict
from enum import Enum

Number = Union[int, float, Decimal]


@dataclass(frozen=True)
class DimCustomer:
    """Customer dimension table structure."""
    customer_id: Optional[int]  # Natural key from the source system
    customer_name: Optional[str]
    contact_name: Optional[str]
    address: Optional[str]
    city: Optional[str]
    postal_code: Optional[str]
    country: Optional[str]


@dataclass(frozen=True)
class DimProduct:
    """Product dimension table structure."""
    product_id: Optional[int]
    product_name: Optional[str]
    supplier_id: Optional[int]
    category_id: Optional[int]
    unit: Optional[str]
    price: Optional[Number]


@dataclass(frozen=True)
class DimSupplier:
    """Supplier dimension table structure."""
    supplier_id: Optional[int]
    supplier_name: Optional[str]
    contact_name: Optional[str]
    address: Optional[str]
    city: Optional[str]
    postal_code: Optional[str]
    country: Optional[str]
    phone: Optional[str]


@dataclass(frozen=True)
class DimCategory:
    """Category dimension table structure."""
    category_id: Optional[int]
    category_name: Optional[str]
    description: Optional[str]


@dataclass(frozen=True)
class NormalizedDate:
    """Calendar date parsed from the leading YYYY-MM-DD of a raw timestamp."""
    order_date: str  # YYYY-MM-DD
    calendar_date: date
    year: int
    month: int
    day: int
    quarter: int


@dataclass(frozen=True)
class DimTime:
    """Time dimension table structure, keyed by the normalized order date."""
    order_date: str
    year: int
    month: int
    day: int
    quarter: int

    @classmethod
    def from_normalized(cls, normalized: NormalizedDate) -> "DimTime":
        return cls(
            order_date=normalized.order_date,
            year=normalized.year,
            month=normalized.month,
            day=normalized.day,
            quarter=normalized.quarter
        )


@dataclass(frozen=True)
class FactSales:
    """Sales fact table structure, one row per order line."""
    # Natural keys
    order_id: int
    customer_id: Optional[int]
    employee_id: Optional[int]
    product_id: int

    # Measures
    quantity: Optional[int]
    total_revenue: Optional[Number]  # quantity * product price

    # Foreign key to DimTime
    order_date: str


class UnmatchedReason(Enum):
    """Why an order line did not join."""
    MISSING_ORDER = "MISSING_ORDER"
    MISSING_PRODUCT = "MISSING_PRODUCT"
    MISSING_ORDER_AND_PRODUCT = "MISSING_ORDER_AND_PRODUCT"


@dataclass(frozen=True)
class Matched:
    """Order line that joined its order and product."""
    order_line_id: Any
    fact: FactSales


@dataclass(frozen=True)
class Unmatched:
    """Order line dropped by the inner join."""
    order_line_id: Any
    order_id: Any
    product_id: Any
    reason: UnmatchedReason


LineOutcome = Union[Matched, Unmatched]


@dataclass
class ETLBatch:
    """ETL batch tracking."""
    batch_id: str
    batch_type: str  # FULL
    table_name: str
    start_time: datetime
    end_time: Optional[datetime]
    status: str  # RUNNING, SUCCESS, FAILED
    records_processed: int
    records_emitted: int
    records_dropped: int
    error_message: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    source_system: str = "sales_flat_files"


@dataclass
class WarehouseBuild:
    """Complete in-memory output of one rebuild, written only when whole."""
    batch_id: str
    dim_customer: List[DimCustomer]
    dim_product: List[DimProduct]
    dim_supplier: List[DimSupplier]
    dim_category: List[DimCategory]
    dim_time: List[DimTime]
    sales_fact: List[FactSales]
    line_outcomes: List[LineOutcome] = field(default_factory=list)
    batches: List[ETLBatch] = field(default_factory=list)

    @property
    def unmatched_lines(self) -> List[Unmatched]:
        return [outcome for outcome in self.line_outcomes if isinstance(outcome, Unmatched)]

    def tables(self) -> Dict[str, List[Dict[str, Any]]]:
        """Rows per warehouse table, ready for insertion."""
        return {
            "dim_customer": [asdict(record) for record in self.dim_customer],
            "dim_product": [asdict(record) for record in self.dim_product],
            "dim_supplier": [asdict(record) for record in self.dim_supplier],
            "dim_category": [asdict(record) for record in self.dim_category],
            "dim_time": [asdict(record) for record in self.dim_time],
            "sales_fact": [asdict(record) for record in self.sales_fact],
        }

"""
Sales fact transformer for ETL operations.

This module joins staged order lines with their orders and products into
the sales_fact table, one fact per order line, with the derived
total_revenue measure and the normalized order date.
"""

from collections import Counter
from typing import List, Dict, Any, Optional

import pandas as pd
import structlog

from sales_etl.errors import MissingReferenceWarning
from sales_etl.models import FactSales, LineOutcome, Matched, Unmatched, UnmatchedReason
from sales_etl.transformers.base_transformer import BaseTransformer, StagingData
from sales_etl.transformers.date_normalizer import normalize_order_date
from shared.database import DatabaseManager

logger = structlog.get_logger(__name__)

ORDER_LINES_TABLE = "order_details_staging"
ORDERS_TABLE = "orders_staging"
PRODUCTS_TABLE = "products_staging"

_ORDER_MATCH = "_order_match"
_PRODUCT_MATCH = "_product_match"


def _value(value: Any) -> Any:
    """Map pandas missing markers back to None."""
    if value is None:
        return None
    try:
        return None if pd.isna(value) else value
    except (TypeError, ValueError):
        return value


def compute_revenue(quantity: Any, price: Any) -> Any:
    """quantity * unit price, or None when either side is unknown."""
    if quantity is None or price is None:
        return None
    return quantity * price


class SalesFactTransformer(BaseTransformer[FactSales]):
    """
    Transformer for the sales fact table.

    Order lines are inner-joined to orders (by order id) and products (by
    product id). Lines that do not join are reported as Unmatched outcomes
    and MissingReferenceWarnings instead of disappearing silently.
    """

    table_name = "sales_fact"
    required_tables = (ORDER_LINES_TABLE, ORDERS_TABLE, PRODUCTS_TABLE)

    def __init__(self, db_manager: Optional[DatabaseManager] = None, batch_id: Optional[str] = None):
        """Initialize sales fact transformer."""
        super().__init__(db_manager, batch_id)
        self.line_outcomes: List[LineOutcome] = []
        self.warnings: List[MissingReferenceWarning] = []

    def transform(self, source_data: StagingData) -> List[FactSales]:
        """
        Transform staged order lines to fact records.

        Args:
            source_data: Staging rows for order lines, orders and products

        Returns:
            List of FactSales records for every order line that joined

        Raises:
            MalformedDateError: If a joined order has an unparseable date
        """
        self.line_outcomes = self.join_order_lines(source_data)
        self.records_processed = len(self.require_rows(source_data, ORDER_LINES_TABLE))

        facts = [outcome.fact for outcome in self.line_outcomes if isinstance(outcome, Matched)]
        unmatched = [outcome for outcome in self.line_outcomes if isinstance(outcome, Unmatched)]

        self.warnings = [
            MissingReferenceWarning(
                outcome.order_line_id, outcome.order_id, outcome.product_id, outcome.reason.value
            )
            for outcome in unmatched
        ]
        self.records_dropped = len(unmatched)
        self.details['dropped_by_reason'] = dict(
            Counter(outcome.reason.value for outcome in unmatched)
        )

        for warning in self.warnings:
            logger.debug("Order line dropped",
                         order_line_id=warning.order_line_id,
                         order_id=warning.order_id,
                         product_id=warning.product_id,
                         reason=warning.reason,
                         batch_id=self.batch_id)

        if unmatched:
            logger.warning("Order lines without matching order or product",
                           dropped=len(unmatched),
                           by_reason=self.details['dropped_by_reason'],
                           batch_id=self.batch_id)

        logger.info("Transformed sales facts",
                    order_lines=self.records_processed,
                    facts=len(facts),
                    batch_id=self.batch_id)

        return facts

    def join_order_lines(self, source_data: StagingData) -> List[LineOutcome]:
        """
        Join every order line to its order and product.

        Join multiplicity follows SQL: a line matching two staged orders
        with the same id yields two outcomes. Null keys never match.

        Returns:
            One Matched or Unmatched outcome per joined combination, in
            order-line order
        """
        lines = self.to_frame(self.require_rows(source_data, ORDER_LINES_TABLE), ORDER_LINES_TABLE)
        orders = self.to_frame(self.require_rows(source_data, ORDERS_TABLE), ORDERS_TABLE)
        products = self.to_frame(self.require_rows(source_data, PRODUCTS_TABLE), PRODUCTS_TABLE)

        orders = orders[orders['id'].notna()].rename(columns={
            'id': 'order_id',
            'customer_id': 'order_customer_id',
            'employee_id': 'order_employee_id',
        })[['order_id', 'order_customer_id', 'order_employee_id', 'order_date_raw']]

        products = products[products['id'].notna()].rename(columns={
            'id': 'product_id',
            'price': 'product_price',
        })[['product_id', 'product_price']]

        lines = lines.rename(columns={'id': 'order_line_id'})

        joined = lines.merge(
            orders, on='order_id', how='left', indicator=_ORDER_MATCH, sort=False
        ).merge(
            products, on='product_id', how='left', indicator=_PRODUCT_MATCH, sort=False
        )

        return [self._line_outcome(row) for row in joined.to_dict('records')]

    def _line_outcome(self, row: Dict[str, Any]) -> LineOutcome:
        """Classify one joined row."""
        has_order = row[_ORDER_MATCH] == 'both'
        has_product = row[_PRODUCT_MATCH] == 'both'

        order_line_id = _value(row['order_line_id'])
        order_id = _value(row['order_id'])
        product_id = _value(row['product_id'])

        if not has_order or not has_product:
            if not has_order and not has_product:
                reason = UnmatchedReason.MISSING_ORDER_AND_PRODUCT
            elif not has_order:
                reason = UnmatchedReason.MISSING_ORDER
            else:
                reason = UnmatchedReason.MISSING_PRODUCT
            return Unmatched(
                order_line_id=order_line_id,
                order_id=order_id,
                product_id=product_id,
                reason=reason
            )

        quantity = _value(row['quantity'])
        normalized = normalize_order_date(_value(row['order_date_raw']), record_key=order_id)

        fact = FactSales(
            order_id=order_id,
            customer_id=_value(row['order_customer_id']),
            employee_id=_value(row['order_employee_id']),
            product_id=product_id,
            quantity=quantity,
            total_revenue=compute_revenue(quantity, _value(row['product_price'])),
            order_date=normalized.order_date
        )
        return Matched(order_line_id=order_line_id, fact=fact)

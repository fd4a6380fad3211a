"""
Unit tests for Sales Fact Transformer.

Tests the order line / order / product join, the derived revenue measure,
date normalization on facts and the reporting of unmatched lines.
"""

import copy
from decimal import Decimal

import pytest

from sales_etl.errors import MalformedDateError, MissingReferenceWarning, StagingUnavailableError
from sales_etl.models import FactSales, Matched, Unmatched, UnmatchedReason
from sales_etl.transformers.sales_fact_transformer import SalesFactTransformer, compute_revenue


def _source(order_lines, orders=None, products=None):
    return {
        'order_details_staging': order_lines,
        'orders_staging': orders if orders is not None else [
            {'id': 10, 'customer_id': 1, 'employee_id': 4,
             'order_date_raw': '1996-07-04 00:00:00', 'shipper_id': 3},
        ],
        'products_staging': products if products is not None else [
            {'id': 5, 'name': 'Gumbo Mix', 'supplier_id': 1, 'category_id': 1,
             'unit': '36 boxes', 'price': 20},
        ],
    }


class TestSalesFactTransformer:
    """Test cases for SalesFactTransformer."""

    @pytest.fixture
    def transformer(self):
        """Create SalesFactTransformer instance."""
        return SalesFactTransformer(batch_id="test_batch_123")

    def test_init(self, transformer):
        """Test transformer initialization."""
        assert transformer.table_name == "sales_fact"
        assert set(transformer.required_tables) == {
            'order_details_staging', 'orders_staging', 'products_staging'
        }
        assert transformer.line_outcomes == []

    def test_single_line_scenario(self, transformer):
        """Test one joined line becomes one fact with revenue 60."""
        source = _source([{'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3}])

        facts = transformer.build(source)

        assert facts == [FactSales(
            order_id=10,
            customer_id=1,
            employee_id=4,
            product_id=5,
            quantity=3,
            total_revenue=60,
            order_date="1996-07-04"
        )]
        assert isinstance(facts[0].total_revenue, int)

    def test_missing_product_drops_exactly_one(self, transformer):
        """Test a line for an unknown product produces no fact."""
        lines = [
            {'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3},
            {'id': 2, 'order_id': 10, 'product_id': 999, 'quantity': 1},
        ]
        products_with_999 = [
            {'id': 5, 'name': 'Gumbo Mix', 'supplier_id': 1, 'category_id': 1, 'unit': 'x', 'price': 20},
            {'id': 999, 'name': 'Mystery', 'supplier_id': 1, 'category_id': 1, 'unit': 'x', 'price': 1},
        ]

        with_product = SalesFactTransformer().build(_source(lines, products=products_with_999))
        without_product = transformer.build(_source(lines))

        assert len(without_product) == len(with_product) - 1
        assert [fact.product_id for fact in without_product] == [5]
        assert transformer.records_dropped == 1

        unmatched = [outcome for outcome in transformer.line_outcomes if isinstance(outcome, Unmatched)]
        assert unmatched == [Unmatched(
            order_line_id=2, order_id=10, product_id=999, reason=UnmatchedReason.MISSING_PRODUCT
        )]

    def test_unmatched_reasons(self, transformer):
        """Test each kind of missing reference is tagged."""
        lines = [
            {'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 1},
            {'id': 2, 'order_id': 77, 'product_id': 5, 'quantity': 1},
            {'id': 3, 'order_id': 10, 'product_id': 88, 'quantity': 1},
            {'id': 4, 'order_id': 77, 'product_id': 88, 'quantity': 1},
        ]

        transformer.build(_source(lines))
        reasons = {
            outcome.order_line_id: outcome.reason
            for outcome in transformer.line_outcomes if isinstance(outcome, Unmatched)
        }

        assert reasons == {
            2: UnmatchedReason.MISSING_ORDER,
            3: UnmatchedReason.MISSING_PRODUCT,
            4: UnmatchedReason.MISSING_ORDER_AND_PRODUCT,
        }
        assert transformer.details['dropped_by_reason'] == {
            'MISSING_ORDER': 1,
            'MISSING_PRODUCT': 1,
            'MISSING_ORDER_AND_PRODUCT': 1,
        }

    def test_missing_reference_warnings(self, transformer):
        """Test every dropped line is surfaced as a warning."""
        lines = [
            {'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 1},
            {'id': 2, 'order_id': 77, 'product_id': 5, 'quantity': 1},
        ]

        transformer.build(_source(lines))

        assert len(transformer.warnings) == 1
        warning = transformer.warnings[0]
        assert isinstance(warning, MissingReferenceWarning)
        assert warning.order_line_id == 2
        assert warning.reason == "MISSING_ORDER"

    def test_one_outcome_per_line(self, transformer, staging_data):
        """Test every order line yields exactly one outcome."""
        transformer.build(staging_data)

        matched = [outcome for outcome in transformer.line_outcomes if isinstance(outcome, Matched)]
        assert len(transformer.line_outcomes) == len(staging_data['order_details_staging'])
        assert [outcome.order_line_id for outcome in matched] == [1, 2, 3]

    def test_fact_count_bounded_by_order_lines(self, transformer, staging_data):
        """Test len(facts) <= len(order lines), equal when all lines join."""
        facts = transformer.build(staging_data)
        assert len(facts) == len(staging_data['order_details_staging'])

        staging_data['order_details_staging'].append(
            {'id': 4, 'order_id': 404, 'product_id': 5, 'quantity': 1}
        )
        facts = SalesFactTransformer().build(staging_data)
        assert len(facts) < len(staging_data['order_details_staging'])

    def test_revenue_sum_exact(self, transformer, staging_data):
        """Test sum of revenue equals sum of quantity * price."""
        prices = {product['id']: product['price'] for product in staging_data['products_staging']}
        expected = sum(
            line['quantity'] * prices[line['product_id']]
            for line in staging_data['order_details_staging']
        )

        facts = transformer.build(staging_data)

        assert sum(fact.total_revenue for fact in facts) == expected == 3 * 20 + 2 * 25 + 7 * 20

    def test_decimal_prices_stay_exact(self, transformer):
        """Test Decimal prices are multiplied without float drift."""
        products = [{'id': 5, 'name': 'Ikura', 'supplier_id': 1, 'category_id': 1,
                     'unit': 'jar', 'price': Decimal('21.35')}]
        lines = [{'id': i, 'order_id': 10, 'product_id': 5, 'quantity': 3} for i in range(1, 11)]

        facts = transformer.build(_source(lines, products=products))

        assert all(fact.total_revenue == Decimal('64.05') for fact in facts)
        assert sum(fact.total_revenue for fact in facts) == Decimal('640.50')

    def test_order_attributes_attached(self, transformer, staging_data):
        """Test customer, employee and normalized date come from the order."""
        facts = transformer.build(staging_data)
        by_order = {fact.order_id: fact for fact in facts}

        assert by_order[11].customer_id == 2
        assert by_order[11].employee_id == 5
        assert by_order[11].order_date == "1996-07-04"
        assert by_order[12].order_date == "1996-08-15"

    def test_malformed_date_on_joined_order(self, transformer):
        """Test a joined order with a bad date fails the build."""
        orders = [{'id': 10, 'customer_id': 1, 'employee_id': 4,
                   'order_date_raw': '04-07-1996', 'shipper_id': 3}]

        with pytest.raises(MalformedDateError) as exc_info:
            transformer.build(_source(
                [{'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3}], orders=orders
            ))

        assert exc_info.value.record_key == 10
        assert exc_info.value.raw_value == '04-07-1996'

    def test_null_keys_never_join(self, transformer):
        """Test null order or product ids are unmatched, like SQL NULLs."""
        orders = [
            {'id': 10, 'customer_id': 1, 'employee_id': 4,
             'order_date_raw': '1996-07-04 00:00:00', 'shipper_id': 3},
            {'id': None, 'customer_id': 2, 'employee_id': 4,
             'order_date_raw': '1996-07-05 00:00:00', 'shipper_id': 3},
        ]
        lines = [
            {'id': 1, 'order_id': None, 'product_id': 5, 'quantity': 3},
            {'id': 2, 'order_id': 10, 'product_id': None, 'quantity': 3},
        ]

        facts = transformer.build(_source(lines, orders=orders))

        assert facts == []
        assert transformer.records_dropped == 2

    def test_duplicate_order_ids_follow_join_multiplicity(self, transformer):
        """Test a line joining two staged orders with one id yields two facts."""
        orders = [
            {'id': 10, 'customer_id': 1, 'employee_id': 4,
             'order_date_raw': '1996-07-04 00:00:00', 'shipper_id': 3},
            {'id': 10, 'customer_id': 2, 'employee_id': 4,
             'order_date_raw': '1996-07-04 00:00:00', 'shipper_id': 3},
        ]

        facts = transformer.build(_source(
            [{'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3}], orders=orders
        ))

        assert sorted(fact.customer_id for fact in facts) == [1, 2]

    def test_null_quantity_has_no_revenue(self, transformer):
        """Test revenue is unknown when quantity is unknown."""
        facts = transformer.build(_source([{'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': None}]))

        assert facts[0].quantity is None
        assert facts[0].total_revenue is None

    def test_staging_not_mutated(self, transformer, staging_data):
        """Test the build leaves staging rows untouched."""
        before = copy.deepcopy(staging_data)

        transformer.build(staging_data)

        assert staging_data == before

    def test_missing_products_table(self, transformer):
        """Test a missing staging table is fatal."""
        source = _source([{'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3}])
        del source['products_staging']

        with pytest.raises(StagingUnavailableError) as exc_info:
            transformer.build(source)

        assert exc_info.value.table_name == "products_staging"

    def test_batch_summary(self, transformer, staging_data):
        """Test batch counters after a build."""
        staging_data['order_details_staging'].append(
            {'id': 4, 'order_id': 404, 'product_id': 5, 'quantity': 1}
        )

        transformer.build(staging_data)
        batch = transformer.batch_summary("SUCCESS")

        assert batch.table_name == "sales_fact"
        assert batch.records_processed == 4
        assert batch.records_emitted == 3
        assert batch.records_dropped == 1
        assert batch.details['dropped_by_reason'] == {'MISSING_ORDER': 1}


class TestComputeRevenue:
    """Test cases for compute_revenue."""

    def test_integer_inputs(self):
        assert compute_revenue(3, 20) == 60

    @pytest.mark.parametrize("quantity,price", [(None, 20), (3, None), (None, None)])
    def test_unknown_inputs(self, quantity, price):
        assert compute_revenue(quantity, price) is None

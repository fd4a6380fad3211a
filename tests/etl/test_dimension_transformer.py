"""
Unit tests for the dimension projectors.

Tests the customer, product, supplier and category projections and the
handling of null and duplicate natural keys.
"""

from decimal import Decimal

import pytest

from sales_etl.errors import StagingUnavailableError
from sales_etl.models import DimCategory, DimCustomer, DimProduct, DimSupplier
from sales_etl.transformers.dimension_transformer import (
    CATEGORY_MAPPING,
    CUSTOMER_MAPPING,
    DIMENSION_MAPPINGS,
    PRODUCT_MAPPING,
    SUPPLIER_MAPPING,
    DimensionTransformer,
    build_dimension_transformers
)


class TestDimensionTransformer:
    """Test cases for DimensionTransformer."""

    def test_init(self):
        """Test transformer takes table names from its mapping."""
        transformer = DimensionTransformer(CUSTOMER_MAPPING, batch_id="test_batch_123")

        assert transformer.table_name == "dim_customer"
        assert transformer.required_tables == ("customers_staging",)
        assert transformer.null_key_policy == "pass_through"

    def test_invalid_policy(self):
        """Test unknown null key policies are refused."""
        with pytest.raises(ValueError):
            DimensionTransformer(CUSTOMER_MAPPING, null_key_policy="ignore")

    def test_customer_projection(self, staging_data):
        """Test customers are renamed column by column."""
        records = DimensionTransformer(CUSTOMER_MAPPING).build(staging_data)

        assert records[0] == DimCustomer(
            customer_id=1,
            customer_name='Alfreds Futterkiste',
            contact_name='Maria Anders',
            address='Obere Str. 57',
            city='Berlin',
            postal_code='12209',
            country='Germany'
        )

    def test_product_projection_keeps_price(self, staging_data):
        """Test product price is carried through unchanged."""
        staging_data['products_staging'][0]['price'] = Decimal('18.00')

        records = DimensionTransformer(PRODUCT_MAPPING).build(staging_data)

        assert records[0] == DimProduct(
            product_id=5,
            product_name="Chef Anton's Gumbo Mix",
            supplier_id=1,
            category_id=1,
            unit='36 boxes',
            price=Decimal('18.00')
        )

    def test_supplier_projection(self, staging_data):
        records = DimensionTransformer(SUPPLIER_MAPPING).build(staging_data)

        assert records == [DimSupplier(
            supplier_id=1,
            supplier_name='Exotic Liquid',
            contact_name='Charlotte Cooper',
            address='49 Gilbert St.',
            city='Londona',
            postal_code='EC1 4SD',
            country='UK',
            phone='(171) 555-2222'
        )]

    def test_category_projection(self, staging_data):
        records = DimensionTransformer(CATEGORY_MAPPING).build(staging_data)

        assert records == [DimCategory(
            category_id=1,
            category_name='Beverages',
            description='Soft drinks, coffees, teas, beers, and ales'
        )]

    @pytest.mark.parametrize("mapping", DIMENSION_MAPPINGS, ids=lambda m: m.table_name)
    def test_one_row_per_staging_row(self, mapping, staging_data):
        """Test row count equals the staging row count."""
        records = DimensionTransformer(mapping).build(staging_data)

        assert len(records) == len(staging_data[mapping.staging_table])

    def test_null_key_passed_through(self, staging_data):
        """Test null natural keys survive by default and are counted."""
        staging_data['customers_staging'].append(
            {'id': None, 'name': 'Nameless', 'contact': None, 'address': None,
             'city': None, 'postal_code': None, 'country': None}
        )
        transformer = DimensionTransformer(CUSTOMER_MAPPING, null_key_policy="pass_through")

        records = transformer.build(staging_data)

        assert len(records) == 3
        assert records[-1].customer_id is None
        assert records[-1].contact_name is None
        assert transformer.details['null_keys'] == 1
        assert transformer.records_dropped == 0

    def test_null_key_rejected(self, staging_data):
        """Test the reject policy leaves rows without keys out."""
        staging_data['customers_staging'].append(
            {'id': None, 'name': 'Nameless', 'contact': None, 'address': None,
             'city': None, 'postal_code': None, 'country': None}
        )
        transformer = DimensionTransformer(CUSTOMER_MAPPING, null_key_policy="reject")

        records = transformer.build(staging_data)

        assert [record.customer_id for record in records] == [1, 2]
        assert transformer.records_dropped == 1

    def test_duplicate_keys_passed_through(self, staging_data):
        """Test duplicate natural keys are kept and counted."""
        staging_data['categories_staging'].append(
            {'id': 1, 'name': 'Beverages (copy)', 'description': None}
        )
        transformer = DimensionTransformer(CATEGORY_MAPPING)

        records = transformer.build(staging_data)

        assert [record.category_id for record in records] == [1, 1]
        assert transformer.details['duplicate_keys'] == 1

    def test_empty_staging_table(self, staging_data):
        """Test an empty staging table is fatal."""
        staging_data['suppliers_staging'] = []

        with pytest.raises(StagingUnavailableError) as exc_info:
            DimensionTransformer(SUPPLIER_MAPPING).build(staging_data)

        assert exc_info.value.table_name == "suppliers_staging"


class TestBuildDimensionTransformers:
    """Test cases for build_dimension_transformers."""

    def test_one_per_dimension(self):
        transformers = build_dimension_transformers(batch_id="rebuild_1", null_key_policy="reject")

        assert [t.table_name for t in transformers] == [
            "dim_customer", "dim_product", "dim_supplier", "dim_category"
        ]
        assert all(t.null_key_policy == "reject" for t in transformers)
        assert transformers[0].batch_id == "rebuild_1_dim_customer"

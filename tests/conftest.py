"""
Global pytest configuration and shared fixtures.

This file makes shared fixtures available to all test modules
and configures pytest settings for the entire test suite.
"""

import os
import tempfile

import pytest

from shared.database import DatabaseManager


SOURCE_FILES = {
    "Customers.csv": (
        "CustomerID,CustomerName,ContactName,Address,City,PostalCode,Country\n"
        '1,Alfreds Futterkiste,Maria Anders,Obere Str. 57,Berlin,12209,Germany\n'
        '2,"Ana Trujillo Emparedados y helados",Ana Trujillo,"Avda. de la Constitución 2222",México D.F.,05021,Mexico\n'
    ),
    "Categories.csv": (
        "CategoryID,CategoryName,Description\n"
        '1,Beverages,"Soft drinks, coffees, teas, beers, and ales"\n'
        "2,Condiments,Sweet and savory sauces\n"
    ),
    "Employees.csv": (
        "EmployeeID,LastName,FirstName,BirthDate,Photo,Notes\n"
        "1,Davolio,Nancy,1968-12-08,EmpID1.pic,Education includes a BA in psychology.\n"
        "2,Fuller,Andrew,1952-02-19,EmpID2.pic,Andrew received his BTS commercial.\n"
    ),
    "Shippers.csv": (
        "ShipperID,ShipperName,Phone\n"
        "1,Speedy Express,(503) 555-9831\n"
    ),
    "Suppliers.csv": (
        "SupplierID,SupplierName,ContactName,Address,City,PostalCode,Country,Phone\n"
        "1,Exotic Liquid,Charlotte Cooper,49 Gilbert St.,Londona,EC1 4SD,UK,(171) 555-2222\n"
    ),
    "Products.csv": (
        "ProductID,ProductName,SupplierID,CategoryID,Unit,Price\n"
        "1,Chais,1,1,10 boxes x 20 bags,18\n"
        "2,Chang,1,1,24 - 12 oz bottles,19\n"
        "3,Aniseed Syrup,1,2,12 - 550 ml bottles,10\n"
    ),
    "Orders.csv": (
        "OrderID,CustomerID,EmployeeID,OrderDate,ShipperID\n"
        "10248,1,1,1996-07-04 00:00:00,1\n"
        "10249,2,2,1996-07-04 00:00:00,1\n"
        "10250,1,2,1996-07-08 00:00:00,1\n"
    ),
    "OrderDetails.csv": (
        "OrderDetailID,OrderID,ProductID,Quantity\n"
        "1,10248,1,12\n"
        "2,10248,2,10\n"
        "3,10249,3,5\n"
        "4,10250,1,9\n"
        "5,10250,999,40\n"
    ),
}


@pytest.fixture
def temp_db_path():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    yield f"sqlite:///{path}"
    try:
        os.unlink(path)
    except OSError:
        pass


@pytest.fixture
def test_db_manager(temp_db_path):
    """Create a test database manager on an empty database."""
    manager = DatabaseManager(temp_db_path)
    yield manager
    manager.dispose()


@pytest.fixture
def source_dir(tmp_path):
    """Directory holding a small, consistent set of source files."""
    for file_name, content in SOURCE_FILES.items():
        (tmp_path / file_name).write_text(content, encoding="utf-8")
    return tmp_path


@pytest.fixture
def staging_data():
    """Staging rows keyed by table, as read back from the database."""
    return {
        'customers_staging': [
            {'id': 1, 'name': 'Alfreds Futterkiste', 'contact': 'Maria Anders',
             'address': 'Obere Str. 57', 'city': 'Berlin', 'postal_code': '12209', 'country': 'Germany'},
            {'id': 2, 'name': 'Around the Horn', 'contact': 'Thomas Hardy',
             'address': '120 Hanover Sq.', 'city': 'London', 'postal_code': 'WA1 1DP', 'country': 'UK'},
        ],
        'categories_staging': [
            {'id': 1, 'name': 'Beverages', 'description': 'Soft drinks, coffees, teas, beers, and ales'},
        ],
        'suppliers_staging': [
            {'id': 1, 'name': 'Exotic Liquid', 'contact': 'Charlotte Cooper', 'address': '49 Gilbert St.',
             'city': 'Londona', 'postal_code': 'EC1 4SD', 'country': 'UK', 'phone': '(171) 555-2222'},
        ],
        'products_staging': [
            {'id': 5, 'name': 'Chef Anton\'s Gumbo Mix', 'supplier_id': 1, 'category_id': 1,
             'unit': '36 boxes', 'price': 20},
            {'id': 6, 'name': 'Grandma\'s Boysenberry Spread', 'supplier_id': 1, 'category_id': 1,
             'unit': '12 - 8 oz jars', 'price': 25},
        ],
        'orders_staging': [
            {'id': 10, 'customer_id': 1, 'employee_id': 4, 'order_date_raw': '1996-07-04 00:00:00', 'shipper_id': 3},
            {'id': 11, 'customer_id': 2, 'employee_id': 5, 'order_date_raw': '1996-07-04T23:59', 'shipper_id': 1},
            {'id': 12, 'customer_id': 1, 'employee_id': 4, 'order_date_raw': '1996-08-15 00:00:00', 'shipper_id': 2},
        ],
        'order_details_staging': [
            {'id': 1, 'order_id': 10, 'product_id': 5, 'quantity': 3},
            {'id': 2, 'order_id': 11, 'product_id': 6, 'quantity': 2},
            {'id': 3, 'order_id': 12, 'product_id': 5, 'quantity': 7},
        ],
    }


# Configure test markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "database: mark test as requiring database"
    )
    config.addinivalue_line(
        "markers", "workflow: mark test as end-to-end workflow test"
    )


# Test collection configuration
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        path = str(item.fspath)
        if "/test_" in path:
            item.add_marker(pytest.mark.unit)

        if "loader" in path or "test_database" in path:
            item.add_marker(pytest.mark.database)
        elif "pipeline" in path or "test_cli" in path:
            item.add_marker(pytest.mark.workflow)

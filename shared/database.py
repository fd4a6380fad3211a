"""
Database models and connection management for the sales warehouse.

This module provides SQLAlchemy ORM models for the raw staging tables the
source files are copied into and for the star-schema tables the pipeline
publishes, along with engine and session management.
"""

from typing import List, Optional, Dict, Any, Type
from contextlib import contextmanager

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    Numeric,
    inspect,
    insert,
    delete,
    select,
    func,
    text
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
import structlog

from .config import settings

logger = structlog.get_logger(__name__)

# SQLAlchemy base class
Base = declarative_base()


# ---------------------------------------------------------------------------
# Staging tables (raw copies of the source files)
# ---------------------------------------------------------------------------

class CustomerStagingModel(Base):
    """Raw customer rows from Customers.csv."""

    __tablename__ = "customers_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    contact = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)


class CategoryStagingModel(Base):
    """Raw category rows from Categories.csv."""

    __tablename__ = "categories_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)


class EmployeeStagingModel(Base):
    """Raw employee rows from Employees.csv."""

    __tablename__ = "employees_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    last_name = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    birth_date = Column(String(50), nullable=True)
    photo = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)


class ShipperStagingModel(Base):
    """Raw shipper rows from Shippers.csv."""

    __tablename__ = "shippers_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)


class SupplierStagingModel(Base):
    """Raw supplier rows from Suppliers.csv."""

    __tablename__ = "suppliers_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    contact = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)


class ProductStagingModel(Base):
    """Raw product rows from Products.csv."""

    __tablename__ = "products_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=True)
    supplier_id = Column(Integer, nullable=True)
    category_id = Column(Integer, nullable=True)
    unit = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)


class OrderStagingModel(Base):
    """Raw order rows from Orders.csv."""

    __tablename__ = "orders_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    customer_id = Column(Integer, nullable=True)
    employee_id = Column(Integer, nullable=True)
    order_date_raw = Column(String(50), nullable=True)  # e.g. 1996-07-04 00:00:00
    shipper_id = Column(Integer, nullable=True)


class OrderLineStagingModel(Base):
    """Raw order line rows from OrderDetails.csv."""

    __tablename__ = "order_details_staging"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Integer, nullable=True)
    order_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=True)


# ---------------------------------------------------------------------------
# Star schema tables
# ---------------------------------------------------------------------------

class DimCustomerModel(Base):
    """Customer dimension."""

    __tablename__ = "dim_customer"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    contact_name = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)


class DimProductModel(Base):
    """Product dimension."""

    __tablename__ = "dim_product"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=True, index=True)
    product_name = Column(String(255), nullable=True)
    supplier_id = Column(Integer, nullable=True)
    category_id = Column(Integer, nullable=True)
    unit = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)


class DimSupplierModel(Base):
    """Supplier dimension."""

    __tablename__ = "dim_supplier"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_id = Column(Integer, nullable=True, index=True)
    supplier_name = Column(String(255), nullable=True)
    contact_name = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)


class DimCategoryModel(Base):
    """Category dimension."""

    __tablename__ = "dim_category"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, nullable=True, index=True)
    category_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)


class DimTimeModel(Base):
    """Time dimension keyed by the normalized order date."""

    __tablename__ = "dim_time"

    order_date = Column(String(10), primary_key=True)  # YYYY-MM-DD
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    quarter = Column(Integer, nullable=False)


class SalesFactModel(Base):
    """Sales fact, one row per joined order line."""

    __tablename__ = "sales_fact"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True)
    employee_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=True)
    total_revenue = Column(Numeric(14, 2), nullable=True)
    order_date = Column(String(10), nullable=False, index=True)


STAGING_MODELS: Dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (
        CustomerStagingModel,
        CategoryStagingModel,
        EmployeeStagingModel,
        ShipperStagingModel,
        SupplierStagingModel,
        ProductStagingModel,
        OrderStagingModel,
        OrderLineStagingModel,
    )
}

WAREHOUSE_MODELS: Dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (
        DimCustomerModel,
        DimProductModel,
        DimSupplierModel,
        DimCategoryModel,
        DimTimeModel,
        SalesFactModel,
    )
}


def model_columns(model: Type[Base]) -> List[str]:
    """Business columns of a model, without the internal row_id."""
    return [column.name for column in model.__table__.columns if column.name != "row_id"]


class DatabaseManager:
    """Database connection and session management."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database manager."""
        self.database_url = database_url or settings.DATABASE_URL
        self.engine = None
        self.SessionLocal = None
        self._setup_database()

    def _setup_database(self):
        """Setup database engine and session factory."""
        try:
            if "sqlite" in self.database_url:
                # SQLite specific configuration
                self.engine = create_engine(
                    self.database_url,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                    echo=False
                )
            else:
                self.engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False
                )

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine
            )

            logger.info("Database connection established", database_url=self.database_url)

        except Exception as e:
            logger.error("Failed to setup database", error=str(e))
            raise

    def create_tables(self, table_names: Optional[List[str]] = None):
        """Create all tables, or only the named ones."""
        try:
            tables = None
            if table_names is not None:
                tables = [Base.metadata.tables[name] for name in table_names]
            Base.metadata.create_all(bind=self.engine, tables=tables)
            logger.info("Database tables created successfully",
                        tables=table_names or "all")
        except Exception as e:
            logger.error("Failed to create database tables", error=str(e))
            raise

    def drop_tables(self, table_names: Optional[List[str]] = None):
        """Drop all tables, or only the named ones."""
        try:
            tables = None
            if table_names is not None:
                tables = [Base.metadata.tables[name] for name in table_names]
            Base.metadata.drop_all(bind=self.engine, tables=tables)
            logger.info("Database tables dropped successfully",
                        tables=table_names or "all")
        except Exception as e:
            logger.error("Failed to drop database tables", error=str(e))
            raise

    def table_exists(self, table_name: str) -> bool:
        """Check whether a table is present in the database."""
        return inspect(self.engine).has_table(table_name)

    def get_session(self) -> Session:
        """Get a new database session."""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized")
        return self.SessionLocal()

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def fetch_rows(self, model: Type[Base]) -> List[Dict[str, Any]]:
        """Read every row of a table as plain dicts of business columns."""
        columns = [model.__table__.c[name] for name in model_columns(model)]
        with self.session_scope() as session:
            result = session.execute(select(*columns))
            return [dict(row) for row in result.mappings().all()]

    def count_rows(self, model: Type[Base]) -> int:
        """Number of rows in a table."""
        with self.session_scope() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()

    def replace_rows(self, session: Session, model: Type[Base], rows: List[Dict[str, Any]]) -> int:
        """Delete every row of a table and insert the given ones in the caller's transaction."""
        session.execute(delete(model))
        if rows:
            session.execute(insert(model), rows)
        return len(rows)

    def health_check(self) -> bool:
        """Check database connection health."""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def dispose(self):
        """Release pooled connections."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")

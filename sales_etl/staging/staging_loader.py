"""
Staging loader for the sales source files.

Copies the delimited source files into their staging tables: the header row
is skipped, columns are mapped by position onto the staging field list, and
id, quantity and price fields are cast. Also owns the post-load purge of
staging tables.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence, Type

import pandas as pd
import structlog
from sqlalchemy import Integer, Numeric
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from sales_etl.errors import StagingLoadError
from shared.config import settings
from shared.database import DatabaseManager, Base, STAGING_MODELS, model_columns

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StagingSource:
    """A source file and the staging table it is copied into."""
    file_name: str
    table_name: str

    @property
    def model(self) -> Type[Base]:
        return STAGING_MODELS[self.table_name]

    @property
    def fields(self) -> List[str]:
        return model_columns(self.model)


STAGING_SOURCES = (
    StagingSource("Customers.csv", "customers_staging"),
    StagingSource("Categories.csv", "categories_staging"),
    StagingSource("Employees.csv", "employees_staging"),
    StagingSource("Shippers.csv", "shippers_staging"),
    StagingSource("Suppliers.csv", "suppliers_staging"),
    StagingSource("Products.csv", "products_staging"),
    StagingSource("Orders.csv", "orders_staging"),
    StagingSource("OrderDetails.csv", "order_details_staging"),
)


def _cast_integer(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{value!r} is not an integer")
    if number != number.to_integral_value():
        raise ValueError(f"{value!r} is not an integer")
    return int(number)


def _cast_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{value!r} is not a number")


class StagingLoader:
    """
    Loads the source files into staging and purges staging afterwards.

    Every staging table is replaced in one transaction; a file that cannot
    be read or parsed leaves the previous staging data untouched.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        source_dir: Optional[str] = None,
        sources: Sequence[StagingSource] = STAGING_SOURCES
    ):
        """Initialize staging loader."""
        self.db_manager = db_manager
        self.source_dir = Path(source_dir or settings.SOURCE_DATA_DIR)
        self.sources = tuple(sources)

    @retry(
        stop=stop_after_attempt(settings.LOAD_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(OSError),
        reraise=True
    )
    def _read_file(self, path: Path) -> pd.DataFrame:
        """Read a delimited file as text, retrying transient I/O failures."""
        return pd.read_csv(
            path,
            sep=settings.CSV_DELIMITER,
            quotechar=settings.CSV_QUOTECHAR,
            encoding=settings.CSV_ENCODING,
            header=0,
            dtype=str,
            keep_default_na=False,
            na_values=[""]
        )

    def read_source(self, source: StagingSource) -> List[Dict[str, Any]]:
        """
        Read one source file into typed staging rows.

        Raises:
            StagingLoadError: If the file is missing, unreadable, has the
                wrong number of columns, or holds uncastable values
        """
        path = self.source_dir / source.file_name
        if not path.is_file():
            raise StagingLoadError(source.file_name, f"file not found in {self.source_dir}")

        try:
            frame = self._read_file(path)
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise StagingLoadError(source.file_name, str(e)) from e

        fields = source.fields
        if len(frame.columns) != len(fields):
            raise StagingLoadError(
                source.file_name,
                f"expected {len(fields)} columns, found {len(frame.columns)}"
            )

        # Positional mapping, header names are ignored
        frame.columns = fields
        frame = frame.astype(object).where(frame.notna(), None)

        table = source.model.__table__
        rows = frame.to_dict('records')
        for column in table.columns:
            if column.name not in fields:
                continue
            if isinstance(column.type, Integer):
                cast = _cast_integer
            elif isinstance(column.type, Numeric):
                cast = _cast_decimal
            else:
                continue
            for line_number, row in enumerate(rows, start=2):
                try:
                    row[column.name] = cast(row[column.name])
                except ValueError as e:
                    raise StagingLoadError(
                        source.file_name, f"line {line_number}, column {column.name}: {e}"
                    ) from e

        logger.info("Read source file",
                    file=source.file_name,
                    table=source.table_name,
                    count=len(rows))

        return rows

    def load_all(self) -> Dict[str, int]:
        """
        Replace every staging table with the content of its source file.

        Returns:
            Rows loaded per staging table
        """
        staged = {source.table_name: self.read_source(source) for source in self.sources}

        table_names = [source.table_name for source in self.sources]
        self.db_manager.create_tables(table_names)

        loaded: Dict[str, int] = {}
        with self.db_manager.session_scope() as session:
            for source in self.sources:
                loaded[source.table_name] = self.db_manager.replace_rows(
                    session, source.model, staged[source.table_name]
                )

        logger.info("Staging tables loaded",
                    source_dir=str(self.source_dir),
                    rows=loaded)

        return loaded

    def purge(self, retained_tables: Optional[Sequence[str]] = None) -> List[str]:
        """
        Drop every staging table not explicitly retained.

        Args:
            retained_tables: Staging tables to keep; defaults to
                STAGING_RETAINED_TABLES from settings

        Returns:
            Names of the dropped tables
        """
        if retained_tables is None:
            retained_tables = settings.STAGING_RETAINED_TABLES

        unknown = set(retained_tables) - set(STAGING_MODELS)
        if unknown:
            raise ValueError(f"Unknown staging tables to retain: {sorted(unknown)}")

        to_drop = [
            table_name for table_name in STAGING_MODELS
            if table_name not in retained_tables and self.db_manager.table_exists(table_name)
        ]
        if to_drop:
            self.db_manager.drop_tables(to_drop)

        logger.info("Staging tables purged",
                    dropped=to_drop,
                    retained=list(retained_tables))

        return to_drop

    def staging_counts(self) -> Dict[str, Optional[int]]:
        """Row count per staging table, None for absent tables."""
        return {
            table_name: (
                self.db_manager.count_rows(model)
                if self.db_manager.table_exists(table_name) else None
            )
            for table_name, model in STAGING_MODELS.items()
        }

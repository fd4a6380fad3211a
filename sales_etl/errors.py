"""
Error types raised and reported by the sales ETL pipeline.
"""

from typing import Any, Optional


class ETLError(Exception):
    """Base exception for sales ETL errors."""
    pass


class MalformedDateError(ETLError):
    """Raised when a raw order timestamp does not start with a valid YYYY-MM-DD date."""

    def __init__(self, raw_value: Any, record_key: Optional[Any] = None, reason: Optional[str] = None):
        self.raw_value = raw_value
        self.record_key = record_key
        self.reason = reason
        message = f"Malformed order date {raw_value!r}"
        if record_key is not None:
            message += f" for record {record_key}"
        if reason:
            message += f": {reason}"
        super().__init__(message)

    def with_record_key(self, record_key: Any) -> "MalformedDateError":
        """Copy of this error naming the record it came from."""
        return MalformedDateError(self.raw_value, record_key=record_key, reason=self.reason)


class StagingUnavailableError(ETLError):
    """Raised when a required staging table is missing or empty."""

    def __init__(self, table_name: str, reason: str = "missing or empty"):
        self.table_name = table_name
        self.reason = reason
        super().__init__(f"Staging table {table_name} is {reason}")


class StagingLoadError(ETLError):
    """Raised when a source file cannot be copied into staging."""

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"Cannot load {file_name}: {reason}")


class MissingReferenceWarning(UserWarning):
    """An order line whose order or product is absent from staging."""

    def __init__(self, order_line_id: Any, order_id: Any, product_id: Any, reason: str):
        self.order_line_id = order_line_id
        self.order_id = order_id
        self.product_id = product_id
        self.reason = reason
        super().__init__(
            f"Order line {order_line_id} dropped ({reason}): "
            f"order_id={order_id}, product_id={product_id}"
        )

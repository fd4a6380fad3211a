"""
Order date normalization.

Raw order timestamps carry a ``YYYY-MM-DD`` prefix followed by optional
time-of-day or other suffix content (``1996-07-04 00:00:00``,
``1996-07-04T10:00``). Only the first ten characters are interpreted, and
they must form a strict ``YYYY-MM-DD`` calendar date.
"""

import re
from datetime import datetime
from typing import Any, Optional, Union

from sales_etl.errors import MalformedDateError
from sales_etl.models import NormalizedDate

DATE_PREFIX_LENGTH = 10
DATE_FORMAT = "%Y-%m-%d"
_DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)

DateParseResult = Union[NormalizedDate, MalformedDateError]


def quarter_of(month: int) -> int:
    """Calendar quarter (1-4) of a month (1-12)."""
    return ((month - 1) // 3) + 1


def try_normalize_order_date(raw_value: Any, record_key: Optional[Any] = None) -> DateParseResult:
    """
    Parse the date prefix of a raw timestamp without raising.

    Returns:
        The NormalizedDate, or the MalformedDateError describing why the
        value was rejected
    """
    if not isinstance(raw_value, str):
        return MalformedDateError(raw_value, record_key, "not a string")

    if len(raw_value) < DATE_PREFIX_LENGTH:
        return MalformedDateError(
            raw_value, record_key, f"shorter than {DATE_PREFIX_LENGTH} characters"
        )

    prefix = raw_value[:DATE_PREFIX_LENGTH]
    if not _DATE_PREFIX.fullmatch(prefix):
        return MalformedDateError(raw_value, record_key, "prefix is not YYYY-MM-DD")

    try:
        parsed = datetime.strptime(prefix, DATE_FORMAT).date()
    except ValueError as e:
        return MalformedDateError(raw_value, record_key, str(e))

    return NormalizedDate(
        order_date=prefix,
        calendar_date=parsed,
        year=parsed.year,
        month=parsed.month,
        day=parsed.day,
        quarter=quarter_of(parsed.month)
    )


def normalize_order_date(raw_value: Any, record_key: Optional[Any] = None) -> NormalizedDate:
    """
    Parse the date prefix of a raw timestamp.

    Raises:
        MalformedDateError: If the value has no valid YYYY-MM-DD prefix
    """
    result = try_normalize_order_date(raw_value, record_key)
    if isinstance(result, MalformedDateError):
        raise result
    return result

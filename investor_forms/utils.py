"""
Utility functions for key naming, blank detection, and date/amount conversions.
"""

import re
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Optional, Union


CAMEL_BOUNDARY_PATTERN = re.compile(r'(?<=[a-z0-9])([A-Z])')
CURRENCY_STRIP_PATTERN = re.compile(r'[$,\s]')
PERCENT_STRIP_PATTERN = re.compile(r'[%\s]')


def utcnow() -> datetime:
    """Naive UTC timestamp used for database columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_camel_case(key: str) -> str:
    """
    Convert a snake_case business key into the camelCase API naming.

    Args:
        key: snake_case key, e.g. 'broker_dealer_name_2'

    Returns:
        camelCase key, e.g. 'brokerDealerName2'
    """
    head, *rest = key.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def to_snake_case(key: str) -> str:
    """Convert a camelCase API key back into snake_case."""
    return CAMEL_BOUNDARY_PATTERN.sub(r'_\1', key).lower()


def is_blank(value: Any) -> bool:
    """
    Check whether a field value counts as empty.

    None, empty/whitespace strings, empty lists and empty mappings are blank.
    Booleans and numbers (including False and 0) are values.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Drop blank entries so they are omitted from a payload instead of sent empty."""
    return {key: value for key, value in payload.items() if not is_blank(value)}


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date from YYYY-MM-DD or an ISO-8601 timestamp.

    Returns:
        The date, or None if the value is not a parseable date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    str_value = value.strip()

    # Try YYYY-MM-DD format
    try:
        return datetime.strptime(str_value, '%Y-%m-%d').date()
    except ValueError:
        pass

    # Try ISO format
    try:
        return datetime.fromisoformat(str_value.replace('Z', '+00:00')).date()
    except ValueError:
        return None


def to_iso_timestamp(value: Any) -> Optional[str]:
    """
    Convert a display date into a full ISO timestamp for persistence.

    Args:
        value: 'YYYY-MM-DD' or an existing timestamp

    Returns:
        'YYYY-MM-DDT00:00:00.000Z', or None for blank/unparseable input
    """
    parsed = parse_date(value)
    if parsed is None:
        return None
    return f'{parsed.isoformat()}T00:00:00.000Z'


def to_display_date(value: Any) -> Optional[str]:
    """Convert a persisted timestamp into 'YYYY-MM-DD' for display-bound fields."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return parsed.isoformat()


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a naive UTC datetime as an ISO timestamp with millisecond precision."""
    if value is None:
        return None
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f'{value.microsecond // 1000:03d}Z'


def parse_currency(value: Any) -> Optional[float]:
    """
    Convert a currency entry into a number.

    Args:
        value: '$1,250.50', '1250.5', 1250.5

    Returns:
        Float amount, or None if blank or not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    cleaned = CURRENCY_STRIP_PATTERN.sub('', value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def format_currency(amount: Any) -> str:
    """
    Format a numeric amount for a currency input.

    Args:
        amount: Numeric amount

    Returns:
        Formatted amount string without a symbol, e.g. '1,250.50'
    """
    if amount is None:
        return ''

    try:
        num = float(amount)
        return f'{num:,.2f}'
    except (ValueError, TypeError):
        return str(amount)


def parse_percentage(value: Any) -> Optional[float]:
    """Convert '12.5%' / '12.5' / 12.5 into a float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    cleaned = PERCENT_STRIP_PATTERN.sub('', value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def format_number(value: Any) -> str:
    """Format a persisted number back into an input string."""
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_int(value: Any) -> Optional[int]:
    """Coerce an integer entry ('5', 5) into an int."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def first_item(value: Union[List[Any], Any]) -> Any:
    """First element of a single-choice list, or the value itself."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value

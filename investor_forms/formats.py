"""
Format checks and normalizers for identity numbers, contact details, dates and amounts.

Format Rules:
=============

1. SSN
   - 9 digits once dashes and whitespace are removed
   - Area (first 3) not 000, 666 or 900-999; group (next 2) not 00; serial (last 4) not 0000
   - Normalized to XXX-XX-XXXX

2. EIN
   - 9 digits once dashes and whitespace are removed
   - Prefix (first 2) not in the IRS-unassigned list
   - Normalized to XX-XXXXXXX

3. PHONE
   - 10 digits once spaces, dashes, parentheses and dots are removed
   - Normalized to (XXX) XXX-XXXX

4. EMAIL
   - Syntactically valid, at most 254 characters

5. DATE
   - YYYY-MM-DD or an ISO-8601 timestamp

6. CURRENCY
   - Non-negative number after stripping $, commas and whitespace
   - At most 2 decimal places, at most 999,999,999,999

7. CURRENCY RANGE
   - {from, to}; both ends are currency; to >= from when both are present

8. ZIP / POSTAL CODE
   - US XXXXX or XXXXX-XXXX, or 3-10 international alphanumeric characters

9. YEAR
   - 4 digits, 1900 through the current year

Every check takes the raw field value and returns an error message, or None
when the value is acceptable. Checks never raise.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from investor_forms.utils import parse_date, CURRENCY_STRIP_PATTERN


MAX_EMAIL_LENGTH = 254
MAX_CURRENCY = 999_999_999_999
MIN_YEAR = 1900

# Regex patterns
NINE_DIGITS_PATTERN = re.compile(r'^\d{9}$')
TEN_DIGITS_PATTERN = re.compile(r'^\d{10}$')
ID_SEPARATOR_PATTERN = re.compile(r'[-\s]')
PHONE_SEPARATOR_PATTERN = re.compile(r'[\s\-().]')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
US_ZIP_PATTERN = re.compile(r'^\d{5}(-\d{4})?$')
POSTAL_CODE_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-]{3,10}$')
YEAR_PATTERN = re.compile(r'^\d{4}$')

INVALID_EIN_PREFIXES = frozenset([
    '00', '07', '08', '09', '17', '18', '19', '28', '29',
    '49', '69', '70', '78', '79', '88', '96', '97',
])

SSN_MESSAGE = 'SSN must be in format XXX-XX-XXXX or XXXXXXXXX (9 digits)'
EIN_MESSAGE = 'EIN must be in format XX-XXXXXXX (9 digits) with a valid prefix'
PHONE_MESSAGE = 'Phone number must be 10 digits'
EMAIL_MESSAGE = 'Please enter a valid email address'
DATE_MESSAGE = 'Invalid date format'
CURRENCY_MESSAGE = 'Amount must be a non-negative number'
RANGE_MESSAGE = 'End amount must be greater than or equal to start amount'
ZIP_MESSAGE = (
    'ZIP/Postal code must be in US format (XXXXX or XXXXX-XXXX) '
    'or international format (3-10 alphanumeric characters)'
)


def _digits(value: str, separators: re.Pattern) -> str:
    return separators.sub('', value)


def check_ssn(value: Any) -> Optional[str]:
    """Validate a Social Security Number."""
    if not isinstance(value, str):
        return SSN_MESSAGE
    cleaned = _digits(value, ID_SEPARATOR_PATTERN)
    if not NINE_DIGITS_PATTERN.match(cleaned):
        return SSN_MESSAGE

    area, group, serial = cleaned[:3], cleaned[3:5], cleaned[5:]
    if area in ('000', '666') or area.startswith('9'):
        return SSN_MESSAGE
    if group == '00' or serial == '0000':
        return SSN_MESSAGE
    return None


def normalize_ssn(value: Any) -> Any:
    """Format a 9-digit SSN as XXX-XX-XXXX; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    cleaned = _digits(value, ID_SEPARATOR_PATTERN)
    if not NINE_DIGITS_PATTERN.match(cleaned):
        return value
    return f'{cleaned[:3]}-{cleaned[3:5]}-{cleaned[5:]}'


def check_ein(value: Any) -> Optional[str]:
    """Validate an Employer Identification Number."""
    if not isinstance(value, str):
        return EIN_MESSAGE
    cleaned = _digits(value, ID_SEPARATOR_PATTERN)
    if not NINE_DIGITS_PATTERN.match(cleaned):
        return EIN_MESSAGE
    if cleaned[:2] in INVALID_EIN_PREFIXES:
        return EIN_MESSAGE
    return None


def normalize_ein(value: Any) -> Any:
    """Format a 9-digit EIN as XX-XXXXXXX; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    cleaned = _digits(value, ID_SEPARATOR_PATTERN)
    if not NINE_DIGITS_PATTERN.match(cleaned):
        return value
    return f'{cleaned[:2]}-{cleaned[2:]}'


def check_phone(value: Any) -> Optional[str]:
    """Validate a 10-digit phone number in any common punctuation."""
    if not isinstance(value, str):
        return PHONE_MESSAGE
    if not TEN_DIGITS_PATTERN.match(_digits(value, PHONE_SEPARATOR_PATTERN)):
        return PHONE_MESSAGE
    return None


def normalize_phone(value: Any) -> Any:
    """Format a 10-digit phone number as (XXX) XXX-XXXX."""
    if not isinstance(value, str):
        return value
    cleaned = _digits(value, PHONE_SEPARATOR_PATTERN)
    if not TEN_DIGITS_PATTERN.match(cleaned):
        return value
    return f'({cleaned[:3]}) {cleaned[3:6]}-{cleaned[6:]}'


def check_email(value: Any) -> Optional[str]:
    """Validate an email address."""
    if not isinstance(value, str):
        return EMAIL_MESSAGE
    str_value = value.strip()
    if len(str_value) > MAX_EMAIL_LENGTH:
        return f'Email address must be no more than {MAX_EMAIL_LENGTH} characters'
    if not EMAIL_PATTERN.match(str_value):
        return EMAIL_MESSAGE
    return None


def check_date(value: Any) -> Optional[str]:
    """Validate a calendar date (YYYY-MM-DD or ISO timestamp)."""
    if parse_date(value) is None:
        return DATE_MESSAGE
    return None


def _currency_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = CURRENCY_STRIP_PATTERN.sub('', value)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def check_currency(value: Any) -> Optional[str]:
    """Validate a non-negative amount with at most two decimals."""
    amount = _currency_amount(value)
    if amount is None or amount < 0:
        return CURRENCY_MESSAGE
    if amount > MAX_CURRENCY:
        return f'Amount must be at most {MAX_CURRENCY:,}'
    if amount != amount.quantize(Decimal('0.01')):
        return 'Amount cannot have more than 2 decimal places'
    return None


def check_currency_range(value: Any) -> Optional[str]:
    """Validate a {from, to} amount range."""
    if not isinstance(value, dict):
        return CURRENCY_MESSAGE
    ends = {}
    for key in ('from', 'to'):
        end = value.get(key)
        if end is None or (isinstance(end, str) and not end.strip()):
            continue
        error = check_currency(end)
        if error:
            return error
        ends[key] = _currency_amount(end)
    if 'from' in ends and 'to' in ends and ends['to'] < ends['from']:
        return RANGE_MESSAGE
    return None


def check_zip(value: Any) -> Optional[str]:
    """Validate a US ZIP or international postal code."""
    if not isinstance(value, str):
        return ZIP_MESSAGE
    str_value = value.strip()
    if US_ZIP_PATTERN.match(str_value) or POSTAL_CODE_PATTERN.match(str_value):
        return None
    return ZIP_MESSAGE


def check_year(value: Any) -> Optional[str]:
    """Validate a 4-digit year between 1900 and the current year."""
    if isinstance(value, bool):
        return 'Year must be 4 digits'
    str_value = str(value).strip() if isinstance(value, (int, str)) else ''
    if not YEAR_PATTERN.match(str_value):
        return 'Year must be 4 digits'
    max_year = date.today().year
    if not MIN_YEAR <= int(str_value) <= max_year:
        return f'Year must be between {MIN_YEAR} and {max_year}'
    return None


# Format tag -> check
FORMAT_CHECKS: Dict[str, Callable[[Any], Optional[str]]] = {
    'ssn': check_ssn,
    'ein': check_ein,
    'phone': check_phone,
    'email': check_email,
    'date': check_date,
    'currency': check_currency,
    'currency_range': check_currency_range,
    'zip': check_zip,
    'year': check_year,
}

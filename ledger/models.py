"""
Ledger input validation and JSON shaping.

Validation runs before any store call; a failure raises ValidationError.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional
from uuid import UUID

from errors import ValidationError

TRANSACTION_TYPES = ('income', 'expense')

# Suggested categories per transaction type; category stays free text
INCOME_CATEGORIES = [
    'Sales',
    'Services',
    'Subscriptions',
    'Other',
]

EXPENSE_CATEGORIES = [
    'Rent',
    'Suppliers',
    'Salaries',
    'Taxes',
    'Marketing',
    'Equipment',
    'Maintenance',
    'Other',
]

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

PROFILE_FIELDS = ('full_name', 'phone', 'company_name', 'commercial_phone', 'address')

# Column widths in run_schema.py; unlisted text fields are TEXT
MAX_LENGTHS = {
    'category': 100,
    'name': 255,
    'email': 255,
    'full_name': 255,
    'company_name': 255,
    'phone': 50,
    'commercial_phone': 50,
}

# NUMERIC(14, 2)
AMOUNT_PLACES = 2
MAX_AMOUNT = Decimal('1e12')


def _text(data: Dict[str, Any], field: str, required: bool) -> Optional[str]:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be text', field=field)
    value = value.strip()
    if required and not value:
        raise ValidationError(f'{field} is required', field=field)
    max_length = MAX_LENGTHS.get(field)
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters', field=field)
    return value or None


def parse_amount(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError('amount is required', field='amount')
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError('amount must be a number', field='amount')
    if not amount.is_finite() or amount <= 0:
        raise ValidationError('amount must be greater than zero', field='amount')
    if amount.as_tuple().exponent < -AMOUNT_PLACES:
        raise ValidationError(f'amount must have at most {AMOUNT_PLACES} decimal places', field='amount')
    if amount >= MAX_AMOUNT:
        raise ValidationError('amount is too large', field='amount')
    return amount


def parse_date(value, field: str = 'date') -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} is required (YYYY-MM-DD)', field=field)
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date (YYYY-MM-DD)', field=field)


def parse_uuid(value, field: str) -> str:
    try:
        return str(UUID(str(value)))
    except ValueError:
        raise ValidationError(f'{field} must be a valid id', field=field)


def validate_transaction(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate a transaction payload.

    Args:
        data: Request body
        partial: Only validate fields that are present (updates)

    Returns:
        Column values ready for the store
    """
    fields = {}

    if not partial or 'amount' in data:
        fields['amount'] = parse_amount(data.get('amount'))

    if not partial or 'type' in data:
        kind = data.get('type')
        if kind not in TRANSACTION_TYPES:
            raise ValidationError("type must be 'income' or 'expense'", field='type')
        fields['type'] = kind

    for field in ('category', 'description'):
        if not partial or field in data:
            fields[field] = _text(data, field, required=True)

    if not partial or 'date' in data:
        fields['date'] = parse_date(data.get('date'))

    if 'client_id' in data:
        client_id = data.get('client_id')
        fields['client_id'] = parse_uuid(client_id, 'client_id') if client_id else None

    return fields


def validate_client(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate a client payload: name required, email format checked when given."""
    fields = {}

    if not partial or 'name' in data:
        fields['name'] = _text(data, 'name', required=True)

    if 'email' in data:
        email = _text(data, 'email', required=False)
        if email and not re.match(EMAIL_PATTERN, email):
            raise ValidationError('Invalid email format', field='email')
        fields['email'] = email.lower() if email else None

    if 'phone' in data:
        fields['phone'] = _text(data, 'phone', required=False)

    return fields


def validate_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    """Contact fields only; plan fields are never accepted from a client."""
    fields = {}
    for field in PROFILE_FIELDS:
        if field in data:
            fields[field] = _text(data, field, required=False)
    if 'full_name' in fields and not fields['full_name']:
        raise ValidationError('full_name cannot be empty', field='full_name')
    return fields


def categories_for(kind: Optional[str] = None) -> Dict[str, list]:
    if kind == 'income':
        return {'income': list(INCOME_CATEGORIES)}
    if kind == 'expense':
        return {'expense': list(EXPENSE_CATEGORIES)}
    return {'income': list(INCOME_CATEGORIES), 'expense': list(EXPENSE_CATEGORIES)}


def serialize(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a store record JSON-safe."""
    if record is None:
        return None
    out = {}
    for key, value in record.items():
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, UUID):
            value = str(value)
        out[key] = value
    return out


def matches(record: Dict[str, Any], query: Optional[str], fields) -> bool:
    """Case-insensitive substring search over the given fields."""
    if not query:
        return True
    needle = query.lower()
    return any(needle in str(record.get(field) or '').lower() for field in fields)

"""
Saldus Error Taxonomy

Every error raised at a component boundary carries an HTTP status and a
plain-language message. app.py turns them into JSON results; nothing is
retried automatically, the user re-triggers the action.
"""

from typing import Optional, Dict, Any


class LedgerError(Exception):
    """Base class for structured, non-fatal API errors."""

    status_code = 500
    error = 'Internal error'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.error, 'message': self.message}


class AuthRequired(LedgerError):
    """No valid owner session; the caller must authenticate."""

    status_code = 401
    error = 'Authentication required'


class ValidationError(LedgerError):
    """Malformed input, rejected before any store call."""

    status_code = 400
    error = 'Invalid input'

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data['field'] = self.field
        return data


class StoreUnavailable(LedgerError):
    """The resource store could not be reached or refused the operation."""

    status_code = 503
    error = 'Storage unavailable'


class BillingUnavailable(LedgerError):
    """The billing provider failed or has no record of the owner."""

    status_code = 502
    error = 'Billing unavailable'


class QuotaExceeded(LedgerError):
    """
    Policy decision, not a fault: the owner's plan does not allow one more
    creation of this resource kind right now.
    """

    status_code = 402
    error = 'Limit exceeded'

    def __init__(self, kind: str, current: int, limit: int, plan_id: str):
        self.kind = kind
        self.current = current
        self.limit = limit
        self.plan_id = plan_id
        super().__init__(f'Weekly {kind} limit reached ({current}/{limit})')

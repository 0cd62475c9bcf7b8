"""
Saldus Checkout and Portal Initiation

Both operations only ask the billing ledger for a hosted URL. Neither writes
local state; whatever happens at the URL is absorbed later by reconciliation.
"""

from typing import Dict, Any

from errors import AuthRequired, BillingUnavailable


def _require_email(session: Dict[str, Any]) -> str:
    if not session or not session.get('email'):
        raise AuthRequired('A signed-in user with an email is required')
    return session['email']


def start_checkout(session: Dict[str, Any], ledger, return_url: str) -> str:
    """Hosted checkout URL for the Pro plan."""
    email = _require_email(session)
    url = ledger.create_checkout_session(email, return_url)
    print(f"[BILLING] Checkout session created for owner={session['owner_id']}", flush=True)
    return url


def open_billing_portal(session: Dict[str, Any], ledger, return_url: str) -> str:
    """
    Hosted billing portal URL.

    Raises:
        BillingUnavailable: the owner has no billing customer yet
    """
    email = _require_email(session)
    customer = ledger.find_customer_by_email(email)
    if customer is None:
        raise BillingUnavailable('No billing account found for this user')
    return ledger.create_portal_session(customer['id'], return_url)

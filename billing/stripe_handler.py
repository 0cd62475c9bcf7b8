"""
Saldus Stripe Billing Ledger

Server-side view of Stripe customers and subscriptions:
- customer lookup by email
- active subscription listing
- hosted checkout and billing portal sessions

Every Stripe failure (network, auth, timeout) surfaces as BillingUnavailable.
Results are plain dicts so callers never depend on Stripe object types.
"""

import os
import sys
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

import stripe

from errors import BillingUnavailable
from billing.plans import STRIPE_PRICE_PRO

# Initialize Stripe with secret key
stripe.api_key = os.environ.get('STRIPE_SECRET_KEY')

# Explicit timeout on every Stripe call; a timeout is a reconciliation failure
BILLING_TIMEOUT_SECONDS = float(os.environ.get('BILLING_TIMEOUT_SECONDS', 10))
stripe.default_http_client = stripe.RequestsClient(timeout=BILLING_TIMEOUT_SECONDS)


def _from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _period_end(subscription) -> Optional[int]:
    """
    Current period end of a subscription.

    Newer Stripe API versions moved the billing period onto subscription
    items, so fall back to the first item.
    """
    value = subscription.get('current_period_end')
    if value is None:
        items = subscription.get('items') or {}
        data = items.get('data') or []
        if data:
            value = data[0].get('current_period_end')
    return value


class StripeLedger:
    """Billing Ledger backed by the Stripe API."""

    def __init__(self, price_id: Optional[str] = None):
        self.price_id = price_id or STRIPE_PRICE_PRO

    def _call(self, step: str, fn, **params):
        if not stripe.api_key:
            print("[STRIPE] WARNING: STRIPE_SECRET_KEY not configured", file=sys.stderr, flush=True)
            raise BillingUnavailable('Billing is not configured')
        try:
            return fn(**params)
        except stripe.StripeError as e:
            print(f"[STRIPE] {step} failed: {e.__class__.__name__}: {e}", file=sys.stderr, flush=True)
            raise BillingUnavailable('Could not reach the billing provider') from e

    def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Most recent Stripe customer with this email, or None."""
        customers = self._call('Customer lookup', stripe.Customer.list, email=email, limit=1)
        if not customers.data:
            return None
        customer = customers.data[0]
        return {'id': customer['id'], 'email': customer.get('email')}

    def list_active_subscriptions(self, customer_id: str, limit: int = 1) -> List[Dict[str, Any]]:
        """Active subscriptions of a customer, newest first."""
        subscriptions = self._call(
            'Subscription list',
            stripe.Subscription.list,
            customer=customer_id,
            status='active',
            limit=limit
        )
        return [
            {
                'id': sub['id'],
                'status': sub['status'],
                'start_date': _from_timestamp(sub.get('start_date')),
                'current_period_end': _from_timestamp(_period_end(sub)),
            }
            for sub in subscriptions.data
        ]

    def create_checkout_session(self, customer_email: str, return_url: str) -> str:
        """
        Hosted checkout for the Pro plan.

        Reuses an existing customer for the email so reconciliation finds the
        subscription under the same customer.
        """
        customer = self.find_customer_by_email(customer_email)
        separator = '&' if '?' in return_url else '?'
        params = {
            'mode': 'subscription',
            'line_items': [{'price': self.price_id, 'quantity': 1}],
            'success_url': f'{return_url}{separator}checkout=success',
            'cancel_url': f'{return_url}{separator}checkout=cancelled',
        }
        if customer:
            params['customer'] = customer['id']
        else:
            params['customer_email'] = customer_email

        session = self._call('Checkout session', stripe.checkout.Session.create, **params)
        return session['url']

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Hosted billing portal for managing or cancelling the subscription."""
        session = self._call(
            'Portal session',
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url
        )
        return session['url']

    def is_configured(self) -> bool:
        return bool(stripe.api_key)

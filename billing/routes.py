"""
Saldus Billing Routes

POST /billing/check-subscription  - Reconcile now and return the plan snapshot
POST /billing/create-checkout     - Hosted checkout URL for the Pro plan
POST /billing/customer-portal     - Hosted billing portal URL
POST /billing/checkout-return     - Schedule reconciliation after a checkout redirect
GET  /billing/status              - Cached plan plus the last reconciliation outcome
GET  /billing/plans               - Public plan catalogue
GET  /billing/health              - Billing configuration check
POST /billing/reconcile/sweep     - Reconcile every owner (internal cron only)
GET  /usage                       - Weekly usage for both quota-counted kinds
"""

import os
import sys

from flask import Blueprint, request, jsonify, g

from auth import require_session, is_internal_request
from billing.checkout import start_checkout, open_billing_portal
from billing.plans import public_plans
from billing.quota import get_usage_summary
from billing.reconcile import reconcile, reconcile_all, snapshot_from_profile, snapshot_to_json
from errors import LedgerError, StoreUnavailable, ValidationError

FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')


def _iso(value):
    return value.isoformat() if value else None


def init_billing(get_store, get_accounts, ledger, poller, open_store):
    """
    Initialize billing routes.

    Args:
        get_store: Returns the request's owner-scoped store
        get_accounts: Returns the request's account store
        ledger: Billing ledger (StripeLedger)
        poller: SubscriptionPoller holding per-owner plan state
        open_store: Context manager factory for stores outside a request
    """
    billing_bp = Blueprint('billing', __name__)

    @billing_bp.route('/billing/check-subscription', methods=['POST'])
    @require_session
    def check_subscription():
        """
        Reconcile the signed-in owner with the billing ledger.

        Returns:
        {
            "subscribed": true,
            "planType": "pro",
            "planExpiryDate": "2026-11-17T12:00:00+00:00"
        }
        """
        session = g.session
        try:
            snapshot = reconcile(session, get_store(), ledger)
        except LedgerError as e:
            poller.record(session['owner_id'], error=e.message)
            raise
        poller.record(session['owner_id'], snapshot=snapshot)
        return jsonify(snapshot_to_json(snapshot))

    @billing_bp.route('/billing/create-checkout', methods=['POST'])
    @require_session
    def create_checkout():
        """Start a Pro subscription. The browser is sent to the returned URL."""
        url = start_checkout(g.session, ledger, f'{FRONTEND_URL}/dashboard')
        return jsonify({'url': url})

    @billing_bp.route('/billing/customer-portal', methods=['POST'])
    @require_session
    def customer_portal():
        """Open the billing portal for an owner who already has a billing customer."""
        url = open_billing_portal(g.session, ledger, f'{FRONTEND_URL}/profile')
        return jsonify({'url': url})

    @billing_bp.route('/billing/checkout-return', methods=['POST'])
    @require_session
    def checkout_return():
        """
        Report the checkout outcome from the redirect URL.

        Request body:
        {
            "checkout": "success" | "cancelled"
        }

        Returns 202 when a reconciliation was scheduled, 200 otherwise.
        """
        data = request.get_json(silent=True) or {}
        status = data.get('checkout') or request.args.get('checkout')
        if not status:
            raise ValidationError('checkout status is required', field='checkout')

        scheduled = poller.after_checkout(g.session, status)
        body = {'checkout': status, 'reconcile_scheduled': scheduled}
        if scheduled:
            body['reconcile_in_seconds'] = poller.checkout_delay
            return jsonify(body), 202
        return jsonify(body), 200

    @billing_bp.route('/billing/status', methods=['GET'])
    @require_session
    def billing_status():
        profile = get_store().get_profile()
        if profile is None:
            raise StoreUnavailable('Profile not found')
        state = poller.state(g.session['owner_id']) or {}
        return jsonify({
            'plan': snapshot_to_json(snapshot_from_profile(profile)),
            'polling': poller.is_polling(g.session['owner_id']),
            'last_checked_at': _iso(state.get('checked_at')),
            'last_error': state.get('error'),
            'last_failed_at': _iso(state.get('failed_at')),
        })

    @billing_bp.route('/billing/plans', methods=['GET'])
    def list_plans():
        return jsonify({'plans': public_plans()})

    @billing_bp.route('/billing/health', methods=['GET'])
    def billing_health():
        """Health check for billing module."""
        return jsonify({
            'status': 'ok',
            'module': 'billing',
            'stripe_configured': ledger.is_configured(),
            'price_configured': bool(ledger.price_id),
            'poll_interval_seconds': poller.interval,
        })

    @billing_bp.route('/billing/reconcile/sweep', methods=['POST'])
    def reconcile_sweep():
        """Reconcile every owner. Called by reconcile_cron.py."""
        if not is_internal_request():
            return jsonify({'error': 'Forbidden'}), 403
        results = reconcile_all(get_accounts(), open_store, ledger)
        print(
            f"[RECONCILE] Sweep done: checked={results['checked']} pro={results['pro']} "
            f"free={results['free']} errors={len(results['errors'])}",
            file=sys.stderr, flush=True
        )
        return jsonify(results)

    @billing_bp.route('/usage', methods=['GET'])
    @require_session
    def usage():
        return jsonify(get_usage_summary(get_store()))

    return billing_bp

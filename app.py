#!/usr/bin/env python3
"""
Saldus API - Small-business ledger
PostgreSQL resource store, plan-gated quotas, Stripe-reconciled subscriptions
"""

import os
import sys
import threading
from urllib.parse import urlparse

from flask import Flask, jsonify, g
from flask_cors import CORS

from auth import SessionEvents
from auth.login import init_login
from auth.registration import init_registration
from auth.password_reset import init_password_reset
from billing.enforce import limit_exceeded_response
from billing.poller import SubscriptionPoller
from billing.reconcile import reconcile
from billing.routes import init_billing
from billing.stripe_handler import StripeLedger
from errors import LedgerError, QuotaExceeded
from ledger import init_clients, init_transactions, init_profile, init_reports
from store import PostgresStore, PostgresAccounts, connect, open_store

# Database URL from environment
DATABASE_URL = os.environ.get('DATABASE_URL')

# Background subscription polling for signed-in owners
POLLER_ENABLED = os.environ.get('POLLER_ENABLED', 'true').lower() == 'true'

print(f"[STARTUP] DATABASE_URL set: {bool(DATABASE_URL)}", file=sys.stderr)
if DATABASE_URL:
    parsed = urlparse(DATABASE_URL)
    print(f"[STARTUP] Database host: {parsed.hostname}:{parsed.port}", file=sys.stderr)


def create_app(store_factory=None, accounts_factory=None, store_opener=None,
               ledger=None, timer_factory=threading.Timer, poller_enabled=POLLER_ENABLED):
    """
    Build the API.

    Args:
        store_factory: owner_id -> owner-scoped store for the current request
        accounts_factory: () -> account store for the current request
        store_opener: owner_id -> context manager yielding a store outside a request
        ledger: Billing ledger (defaults to StripeLedger)
        timer_factory: Timer class used by the subscription poller
        poller_enabled: Start polling on login/refresh
    """
    app = Flask(__name__)
    CORS(app)

    def get_db():
        """Get database connection for current request context."""
        if 'db' not in g:
            g.db = connect()
        return g.db

    @app.teardown_appcontext
    def close_db(exception):
        """Close database connection at end of request."""
        db = g.pop('db', None)
        if db is not None:
            db.close()

    if store_factory is None:
        def store_factory(owner_id):
            return PostgresStore(get_db(), owner_id)

    if accounts_factory is None:
        def accounts_factory():
            return PostgresAccounts(get_db())

    store_opener = store_opener or open_store
    ledger = ledger or StripeLedger()

    def get_store():
        """Store scoped to the signed-in owner of this request."""
        if 'store' not in g:
            g.store = store_factory(g.session['owner_id'])
        return g.store

    def get_accounts():
        if 'accounts' not in g:
            g.accounts = accounts_factory()
        return g.accounts

    def reconcile_session(session):
        with store_opener(session['owner_id']) as store:
            return reconcile(session, store, ledger)

    poller = SubscriptionPoller(reconcile_session, timer_factory=timer_factory)

    session_events = SessionEvents()
    if poller_enabled:
        session_events.on_session_change(poller.handle_session_change)
    else:
        print("[STARTUP] Subscription poller disabled", file=sys.stderr)

    @app.after_request
    def touch_session(response):
        """Authenticated requests keep the owner's subscription polling alive."""
        session = g.get('session')
        if session is not None:
            poller.touch(session['owner_id'])
        return response

    app.extensions['saldus'] = {
        'ledger': ledger,
        'poller': poller,
        'session_events': session_events,
    }

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e):
        if isinstance(e, QuotaExceeded):
            return limit_exceeded_response(e.kind, e.current, e.limit, e.plan_id)
        return jsonify(e.to_dict()), e.status_code

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'ok',
            'service': 'saldus-api',
            'database_configured': bool(DATABASE_URL),
            'billing_configured': ledger.is_configured(),
        })

    # =========================================================================
    # AUTH
    # =========================================================================

    app.register_blueprint(init_registration(get_accounts, session_events))
    app.register_blueprint(init_login(get_accounts, session_events))
    app.register_blueprint(init_password_reset(get_accounts))

    # =========================================================================
    # LEDGER
    # =========================================================================

    app.register_blueprint(init_clients(get_store))
    app.register_blueprint(init_transactions(get_store))
    app.register_blueprint(init_profile(get_store))
    app.register_blueprint(init_reports(get_store))

    # =========================================================================
    # BILLING
    # =========================================================================

    app.register_blueprint(init_billing(get_store, get_accounts, ledger, poller, store_opener))

    return app


app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))
    app.run(host='0.0.0.0', port=port, debug=False)

"""
Saldus Subscription Reconciler

Pulls the authoritative subscription state from the billing ledger and folds
it into the owner's profile, which acts as the plan cache read by the quota
engine. There is no webhook consumer; reconciliation is pull-based.

A ledger failure aborts before the profile write, so the last known plan is
kept.
"""

import sys
from datetime import datetime
from typing import Dict, Any, Optional

from errors import AuthRequired, LedgerError


def make_snapshot(subscribed: bool, plan_type: str,
                  plan_expiry_date: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        'subscribed': subscribed,
        'plan_type': plan_type,
        'plan_expiry_date': plan_expiry_date,
    }


def snapshot_to_json(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Wire shape: {subscribed, planType, planExpiryDate}."""
    expiry = snapshot.get('plan_expiry_date')
    return {
        'subscribed': snapshot['subscribed'],
        'planType': snapshot['plan_type'],
        'planExpiryDate': expiry.isoformat() if expiry else None,
    }


def snapshot_from_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Snapshot as last cached in a profile row."""
    plan_type = profile.get('plan_type') or 'free'
    return make_snapshot(plan_type == 'pro', plan_type, profile.get('plan_expiry_date'))


def reconcile(session: Optional[Dict[str, Any]], store, ledger) -> Dict[str, Any]:
    """
    Reconcile one owner's plan with the billing ledger.

    Args:
        session: {'owner_id', 'email'} of the owner
        store: Owner-scoped resource store
        ledger: Billing ledger (StripeLedger or compatible)

    Returns:
        Snapshot dict with subscribed, plan_type, plan_expiry_date

    Raises:
        AuthRequired: no session or no email to look up
        BillingUnavailable: ledger failed; the profile was not written
        StoreUnavailable: the profile write failed
    """
    if not session or not session.get('email'):
        raise AuthRequired('A signed-in user with an email is required')

    owner_id = session['owner_id']
    email = session['email']
    print(f"[RECONCILE] Checking subscription for owner={owner_id} email={email}", flush=True)

    customer = ledger.find_customer_by_email(email)

    if customer is None:
        print(f"[RECONCILE] No billing customer for owner={owner_id}", flush=True)
        snapshot = make_snapshot(False, 'free')
        store.write_plan('free', None, clear_start=True)
        return snapshot

    subscriptions = ledger.list_active_subscriptions(customer['id'], limit=1)

    if not subscriptions:
        print(f"[RECONCILE] No active subscription for customer={customer['id']}", flush=True)
        snapshot = make_snapshot(False, 'free')
        store.write_plan('free', None)
        return snapshot

    subscription = subscriptions[0]
    snapshot = make_snapshot(True, 'pro', subscription['current_period_end'])
    store.write_plan(
        'pro',
        subscription['current_period_end'],
        plan_start_date=subscription.get('start_date')
    )
    print(
        f"[RECONCILE] Active subscription {subscription['id']} for owner={owner_id}, "
        f"ends {subscription['current_period_end']}",
        flush=True
    )
    return snapshot


def reconcile_all(accounts, open_store, ledger) -> Dict[str, Any]:
    """
    Reconcile every owner from the email stored on their profile.

    Catches subscription changes for owners without an active session.
    A failure for one owner is recorded and the sweep continues.
    """
    results = {'checked': 0, 'pro': 0, 'free': 0, 'errors': []}
    for profile in accounts.list_profiles():
        session = {'owner_id': str(profile['id']), 'email': profile['email']}
        try:
            with open_store(session['owner_id']) as store:
                snapshot = reconcile(session, store, ledger)
        except LedgerError as e:
            print(f"[RECONCILE] Sweep failed for owner={session['owner_id']}: {e.message}", file=sys.stderr, flush=True)
            results['errors'].append({'owner_id': session['owner_id'], 'error': e.message})
            continue
        results['checked'] += 1
        results[snapshot['plan_type']] += 1
    return results

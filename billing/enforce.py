"""
Saldus Quota Enforcement

Guards the creation seam for quota-counted resources:
- Free owners: count-check and insert happen as one atomic store operation
- Returns 402 Payment Required when the weekly limit is reached
- Includes upgrade URL for easy conversion
"""

import os
from datetime import datetime
from typing import Dict, Any, Optional

from flask import jsonify

from errors import QuotaExceeded
from billing.plans import limits_for, get_upgrade_recommendation
from billing.quota import get_owner_plan, window_start

# Base URL for upgrade links
BASE_URL = os.environ.get('BASE_URL', 'http://localhost:5000')


def limit_exceeded_response(limit_type: str, current: int, limit: int, plan_id: str):
    """
    Generate a 402 Payment Required response with upgrade info.

    Args:
        limit_type: Resource kind whose limit was hit ('transaction', 'client')
        current: Creations inside the window
        limit: The limit that was hit
        plan_id: Current plan ID

    Returns:
        Flask response tuple (jsonify, status_code)
    """
    upgrade_plan = get_upgrade_recommendation(plan_id)
    checkout_url = f"{BASE_URL}/billing/create-checkout" if upgrade_plan else None

    messages = {
        'transaction': f'Weekly transaction limit reached ({current}/{limit}). Upgrade to Pro for unlimited transactions.',
        'client': f'Weekly client limit reached ({current}/{limit}). Upgrade to Pro for unlimited clients.',
    }

    return jsonify({
        'error': 'Limit exceeded',
        'message': messages.get(limit_type, f'{limit_type} limit reached'),
        'limit_type': limit_type,
        'current': current,
        'limit': limit,
        'plan': plan_id,
        'upgrade_to': upgrade_plan,
        'upgrade_url': checkout_url
    }), 402


def create_within_quota(store, kind: str, fields: Dict[str, Any],
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Create a quota-counted record, or refuse without touching the store.

    Args:
        store: Owner-scoped resource store
        kind: 'transaction' or 'client'
        fields: Validated column values
        now: Instant of the check (defaults to current UTC time)

    Returns:
        The inserted record

    Raises:
        QuotaExceeded: the owner's weekly limit for this kind is reached
        StoreUnavailable: the store failed; nothing was committed
    """
    plan_id = get_owner_plan(store)
    limit = limits_for(plan_id)['weekly_create_limit']

    if limit is None:
        return store.insert(kind, fields)

    record, count = store.insert_within_quota(kind, fields, window_start(now), limit)
    if record is None:
        # Log the limit hit for analytics
        print(f"[BILLING] {kind.capitalize()} limit hit: owner={store.owner_id}, plan={plan_id}, usage={count}/{limit}", flush=True)
        raise QuotaExceeded(kind, count, limit, plan_id)
    return record

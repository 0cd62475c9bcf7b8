"""
Saldus Quota Engine

Decides whether an owner may create one more transaction or client right now:
- Rolling 7-day window ending at the instant of the check
- Each resource kind is counted on its own
- Pro owners are never limited; their count is informational

Read-only and pull-based. Callers re-invoke after every create or delete.
"""

import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from errors import StoreUnavailable
from billing.plans import PLANS, limits_for, normalize_plan

QUOTA_WINDOW = timedelta(days=7)
QUOTA_KINDS = ('transaction', 'client')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def window_start(now: Optional[datetime] = None) -> datetime:
    """Lower bound of the quota window. Creations at this instant still count."""
    return (now or utcnow()) - QUOTA_WINDOW


def get_owner_plan(store) -> str:
    """
    Read the cached plan tier from the owner's profile.

    Raises:
        StoreUnavailable: if the profile is missing (fails closed)
    """
    profile = store.get_profile()
    if profile is None:
        print(f"[QUOTA] No profile for owner {store.owner_id}", file=sys.stderr, flush=True)
        raise StoreUnavailable('Profile not found')
    return normalize_plan(profile.get('plan_type'))


def count_recent(store, kind: str, now: Optional[datetime] = None) -> int:
    """Number of records of this kind created inside the window."""
    return store.count(kind, filters=[('created_at', '>=', window_start(now))])


def can_create(store, kind: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Check whether one more record of this kind may be created.

    Args:
        store: Owner-scoped resource store
        kind: 'transaction' or 'client'
        now: Instant of the check (defaults to current UTC time)

    Returns:
        {'count', 'limit', 'allowed', 'plan'}; limit is None when unbounded
    """
    if kind not in QUOTA_KINDS:
        raise ValueError(f'Not a quota-counted kind: {kind}')

    plan_id = get_owner_plan(store)
    limit = limits_for(plan_id)['weekly_create_limit']
    count = count_recent(store, kind, now)

    return {
        'count': count,
        'limit': limit,
        'allowed': limit is None or count < limit,
        'plan': plan_id,
    }


def quota_to_json(status: Dict[str, Any]) -> Dict[str, Any]:
    """Wire shape of a quota snapshot."""
    return {
        'count': status['count'],
        'limit': status['limit'],
        'canCreate': status['allowed'],
    }


def get_usage_summary(store, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Full usage summary with plan and both quota counters.

    Returns:
        Dictionary with plan, per-kind usage snapshots and percentages
    """
    plan_id = get_owner_plan(store)
    plan = PLANS[plan_id]
    limit = limits_for(plan_id)['weekly_create_limit']

    def calc_pct(current, limit):
        if limit is None:
            return 0  # unlimited
        return min(100, round((current / max(limit, 1)) * 100, 1))

    usage = {}
    for kind in QUOTA_KINDS:
        count = count_recent(store, kind, now)
        usage[kind] = {
            'count': count,
            'limit': limit,
            'canCreate': limit is None or count < limit,
            'percentage': calc_pct(count, limit),
        }

    return {
        'plan': {
            'id': plan['id'],
            'name': plan['name'],
        },
        'window_days': QUOTA_WINDOW.days,
        'usage': usage,
    }

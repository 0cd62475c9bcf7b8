"""
Saldus Plan Definitions

Plan tiers:
- Free: 5 new transactions and 5 new clients per rolling week
- Pro: unlimited resources, monthly subscription

The weekly limit is counted separately for each resource kind; it is not a
shared pool.
"""

import os
from typing import Optional, Dict, Any

# Stripe Price ID for the Pro subscription (set per environment)
STRIPE_PRICE_PRO = os.environ.get('STRIPE_PRICE_PRO', 'price_test_pro')

DEFAULT_PLAN = 'free'


PLANS: Dict[str, Dict[str, Any]] = {
    'free': {
        'id': 'free',
        'name': 'Free',
        'description': 'Track a handful of clients and transactions',
        'price': 0,  # cents
        'interval': None,  # no billing
        'weekly_create_limit': 5,  # per resource kind, rolling 7 days
        'unlimited_resources': False,
        'features': [
            '5 new transactions per week',
            '5 new clients per week',
            'Dashboard and monthly reports',
        ],
        'stripe_price_id': None,  # no Stripe product for free tier
    },
    'pro': {
        'id': 'pro',
        'name': 'Pro',
        'description': 'For businesses that outgrew the free tier',
        'price': 2990,  # cents per month
        'interval': 'month',
        'weekly_create_limit': None,  # unlimited
        'unlimited_resources': True,
        'features': [
            'Unlimited transactions',
            'Unlimited clients',
            'Dashboard and monthly reports',
            'Billing portal access',
        ],
        'stripe_price_id': STRIPE_PRICE_PRO,
    },
}


def get_plan(plan_id: str) -> Optional[Dict[str, Any]]:
    """
    Get a plan by ID.

    Args:
        plan_id: The plan identifier ('free', 'pro')

    Returns:
        Plan dictionary or None if not found
    """
    return PLANS.get(plan_id)


def limits_for(plan_id: Optional[str]) -> Dict[str, Any]:
    """
    Map a plan tier to its entitlements.

    Args:
        plan_id: The plan identifier; unknown or missing tiers get free limits

    Returns:
        Dictionary with weekly_create_limit (None means unbounded) and
        unlimited_resources
    """
    plan = PLANS.get(plan_id or DEFAULT_PLAN, PLANS[DEFAULT_PLAN])
    return {
        'weekly_create_limit': plan['weekly_create_limit'],
        'unlimited_resources': plan['unlimited_resources'],
    }


def normalize_plan(plan_id: Optional[str]) -> str:
    """Return plan_id if it names a known tier, otherwise the default tier."""
    return plan_id if plan_id in PLANS else DEFAULT_PLAN


def is_limit_exceeded(current: int, limit: Optional[int]) -> bool:
    """
    Check if a limit has been reached.

    Args:
        current: Current usage count
        limit: The limit (None means unlimited)

    Returns:
        True if one more creation would go over the limit
    """
    if limit is None:
        return False  # unlimited
    return current >= limit


def get_upgrade_recommendation(plan_id: str) -> Optional[str]:
    """
    Get the recommended upgrade plan when a limit is hit.

    Returns:
        Recommended plan ID or None if already on the highest tier
    """
    if plan_id == 'free':
        return 'pro'
    return None


def public_plans() -> list:
    """Plan list for pricing pages, without Stripe identifiers."""
    return [
        {
            'id': plan['id'],
            'name': plan['name'],
            'description': plan['description'],
            'price': plan['price'],
            'interval': plan['interval'],
            'weekly_create_limit': plan['weekly_create_limit'],
            'features': list(plan['features']),
        }
        for plan in PLANS.values()
    ]

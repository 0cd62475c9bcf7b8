"""
Saldus Billing Module

This module handles:
- Plan definitions and per-tier limits
- Weekly quota checks and the guarded creation seam
- Stripe integration (customer lookup, checkout and portal sessions)
- Pull-based subscription reconciliation and polling
"""

from billing.plans import PLANS, get_plan, limits_for
from billing.quota import can_create, get_usage_summary
from billing.enforce import create_within_quota
from billing.reconcile import reconcile, reconcile_all
from billing.checkout import start_checkout, open_billing_portal

__all__ = [
    'PLANS', 'get_plan', 'limits_for',
    'can_create', 'get_usage_summary',
    'create_within_quota',
    'reconcile', 'reconcile_all',
    'start_checkout', 'open_billing_portal',
]

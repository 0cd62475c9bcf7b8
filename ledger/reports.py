"""
Dashboard and Reports

GET /dashboard  - Current month totals, recent activity, receivables/payables, quota
GET /reports    - Six-month income/expense history and top expense categories

Figures are aggregated from the owner's transactions by effective date.
"""

from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Any, Optional, List

from flask import Blueprint, jsonify

from auth import require_session
from billing.quota import can_create, quota_to_json, utcnow
from ledger.models import serialize

RECENT_LIMIT = 5
REPORT_MONTHS = 6
TOP_CATEGORIES = 5


def month_start(day: date) -> date:
    return day.replace(day=1)


def next_month(day: date) -> date:
    """First day of the month after the given day."""
    return (day.replace(day=28) + timedelta(days=4)).replace(day=1)


def shift_months(day: date, months: int) -> date:
    """First day of the month `months` away from the given day's month."""
    index = day.year * 12 + day.month - 1 + months
    return date(index // 12, index % 12 + 1, 1)


def _total(transactions: List[Dict[str, Any]], kind: str) -> Decimal:
    return sum((t['amount'] for t in transactions if t['type'] == kind), Decimal('0'))


def dashboard_summary(store, today: Optional[date] = None, now=None) -> Dict[str, Any]:
    """
    Build the dashboard for one owner.

    Args:
        store: Owner-scoped resource store
        today: Business date used for the month and for future-dated entries
        now: Instant for the quota window

    Returns:
        Dictionary with month totals, recent transactions, receivables,
        payables, the weekly transaction quota and the plan
    """
    today = today or date.today()
    start = month_start(today)

    month = store.list('transaction', filters=[
        ('date', '>=', start),
        ('date', '<', next_month(today)),
    ])
    income = _total(month, 'income')
    expense = _total(month, 'expense')

    upcoming = store.list('transaction', filters=[('date', '>', today)])

    recent = store.list('transaction', order_by='date', descending=True, limit=RECENT_LIMIT)
    quota = can_create(store, 'transaction', now)

    return {
        'month': start.strftime('%Y-%m'),
        'income': float(income),
        'expense': float(expense),
        'balance': float(income - expense),
        'receivable': float(_total(upcoming, 'income')),
        'payable': float(_total(upcoming, 'expense')),
        'recent_transactions': [serialize(t) for t in recent],
        'quota': quota_to_json(quota),
        'plan': quota['plan'],
    }


def monthly_report(store, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Income and expense per month for the last six months, oldest first.

    Months without transactions are reported with zero totals.
    """
    today = today or date.today()
    first = shift_months(today, -(REPORT_MONTHS - 1))

    transactions = store.list('transaction', filters=[
        ('date', '>=', first),
        ('date', '<', next_month(today)),
    ])

    months = OrderedDict()
    for offset in range(REPORT_MONTHS):
        key = shift_months(first, offset).strftime('%Y-%m')
        months[key] = {'income': Decimal('0'), 'expense': Decimal('0')}

    categories: Dict[str, Decimal] = {}
    for t in transactions:
        key = t['date'].strftime('%Y-%m')
        months[key][t['type']] += t['amount']
        if t['type'] == 'expense':
            categories[t['category']] = categories.get(t['category'], Decimal('0')) + t['amount']

    top = sorted(categories.items(), key=lambda item: (-item[1], item[0]))[:TOP_CATEGORIES]

    return {
        'months': [
            {
                'month': key,
                'income': float(totals['income']),
                'expense': float(totals['expense']),
                'balance': float(totals['income'] - totals['expense']),
            }
            for key, totals in months.items()
        ],
        'top_expense_categories': [
            {'category': name, 'total': float(total)} for name, total in top
        ],
    }


def init_reports(get_store):
    """Initialize dashboard and report routes with owner-scoped store access."""
    reports_bp = Blueprint('reports', __name__)

    @reports_bp.route('/dashboard', methods=['GET'])
    @require_session
    def dashboard():
        return jsonify(dashboard_summary(get_store(), now=utcnow()))

    @reports_bp.route('/reports', methods=['GET'])
    @require_session
    def reports():
        return jsonify(monthly_report(get_store()))

    return reports_bp

"""
Saldus Ledger Module

Owner-scoped clients, transactions, profile contact details, dashboard and
reports. Creation of clients and transactions goes through the quota guard.
"""

from ledger.clients import init_clients
from ledger.transactions import init_transactions
from ledger.profile import init_profile
from ledger.reports import init_reports

__all__ = ['init_clients', 'init_transactions', 'init_profile', 'init_reports']

"""
Saldus Resource Store

Owner-scoped persistence over PostgreSQL:
- clients and transactions (CRUD, filtered lists, counts)
- the owner's profile (contact fields and cached plan)
- identity rows and password reset tokens
"""

from store.postgres import (
    RESOURCES,
    PostgresStore,
    PostgresAccounts,
    connect,
    open_store,
)

__all__ = ['RESOURCES', 'PostgresStore', 'PostgresAccounts', 'connect', 'open_store']

"""
Saldus Resource Store
PostgreSQL persistence for profiles, clients and transactions.

Every statement is scoped to one owner: the connection sets
app.current_owner for the row-level security policies and each query also
filters on the owner column.
"""

import os
import sys
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

import psycopg2
import psycopg2.extras

from errors import StoreUnavailable

DATABASE_URL = os.environ.get('DATABASE_URL')
CONNECT_TIMEOUT = int(os.environ.get('DB_CONNECT_TIMEOUT', 10))

RESOURCES: Dict[str, Dict[str, Any]] = {
    'transaction': {
        'table': 'transactions',
        'columns': ('client_id', 'amount', 'type', 'category', 'description', 'date'),
        'filterable': ('id', 'client_id', 'type', 'category', 'date', 'amount', 'created_at'),
        'orderable': ('date', 'created_at', 'amount', 'category'),
    },
    'client': {
        'table': 'clients',
        'columns': ('name', 'email', 'phone'),
        'filterable': ('id', 'name', 'email', 'created_at'),
        'orderable': ('name', 'created_at'),
    },
}

OPERATORS = ('=', '!=', '>', '>=', '<', '<=')

PROFILE_CONTACT_FIELDS = ('full_name', 'phone', 'company_name', 'commercial_phone', 'address')


def resource_spec(kind: str) -> Dict[str, Any]:
    """Look up the table definition for a resource kind."""
    try:
        return RESOURCES[kind]
    except KeyError:
        raise ValueError(f'Unknown resource kind: {kind}')


def connect(database_url: Optional[str] = None):
    """Open a connection, mapping connection failures to StoreUnavailable."""
    url = database_url or DATABASE_URL
    if not url:
        raise StoreUnavailable('DATABASE_URL environment variable not set')
    try:
        conn = psycopg2.connect(url, connect_timeout=CONNECT_TIMEOUT)
    except psycopg2.Error as e:
        print(f"[STORE] Connection failed: {e}", file=sys.stderr, flush=True)
        raise StoreUnavailable('Could not connect to the database') from e
    conn.autocommit = False
    return conn


@contextmanager
def open_store(owner_id: str, database_url: Optional[str] = None):
    """Store on a dedicated connection, for work outside a request."""
    conn = connect(database_url)
    try:
        yield PostgresStore(conn, owner_id)
    finally:
        conn.close()


def _rollback(conn):
    try:
        conn.rollback()
    except psycopg2.Error as e:
        print(f"[STORE] Rollback failed: {e}", file=sys.stderr, flush=True)


class PostgresStore:
    """Owner-scoped CRUD over clients, transactions and the owner's profile."""

    def __init__(self, conn, owner_id: str):
        self.conn = conn
        self.owner_id = owner_id

    def _cursor(self):
        cur = self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        # Transaction-local owner context for RLS
        cur.execute("SELECT set_config('app.current_owner', %s, true)", (self.owner_id,))
        return cur

    def _execute(self, sql: str, params, fetch: str = 'one', commit: bool = False):
        cur = None
        try:
            cur = self._cursor()
            cur.execute(sql, params)
            if fetch == 'one':
                result = cur.fetchone()
            elif fetch == 'all':
                result = cur.fetchall()
            else:
                result = cur.rowcount
            if commit:
                self.conn.commit()
            return result
        except psycopg2.Error as e:
            _rollback(self.conn)
            print(f"[STORE] {e.__class__.__name__} for owner {self.owner_id}: {e}", file=sys.stderr, flush=True)
            raise StoreUnavailable('The database rejected or failed the request') from e
        finally:
            if cur is not None:
                cur.close()

    def _select_from(self, spec: Dict[str, Any]) -> str:
        if spec['table'] == 'transactions':
            return '''SELECT r.*, c.name AS client_name
                      FROM transactions r
                      LEFT JOIN clients c ON c.id = r.client_id AND c.user_id = r.user_id'''
        return f"SELECT r.* FROM {spec['table']} r"

    def _where(self, spec: Dict[str, Any], filters) -> Tuple[str, list]:
        clauses = ['r.user_id = %s']
        params = [self.owner_id]
        for column, op, value in filters or ():
            if column not in spec['filterable']:
                raise ValueError(f"Cannot filter {spec['table']} on {column}")
            if op not in OPERATORS:
                raise ValueError(f'Unsupported operator: {op}')
            clauses.append(f'r.{column} {op} %s')
            params.append(value)
        return ' AND '.join(clauses), params

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def insert(self, kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        spec = resource_spec(kind)
        sql, params = self._insert_sql(spec, fields)
        return dict(self._execute(sql, params, commit=True))

    def _insert_sql(self, spec: Dict[str, Any], fields: Dict[str, Any]) -> Tuple[str, list]:
        columns = [c for c in spec['columns'] if c in fields]
        placeholders = ', '.join(['%s'] * (len(columns) + 1))
        sql = f'''INSERT INTO {spec['table']} (user_id, {', '.join(columns)})
                  VALUES ({placeholders})
                  RETURNING *'''
        return sql, [self.owner_id] + [fields[c] for c in columns]

    def update(self, kind: str, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        spec = resource_spec(kind)

        # Build dynamic UPDATE
        updates = []
        params = []
        for column in spec['columns']:
            if column in fields:
                updates.append(f'{column} = %s')
                params.append(fields[column])

        if not updates:
            return self.get(kind, record_id)

        params.extend([record_id, self.owner_id])
        sql = f'''UPDATE {spec['table']}
                  SET {', '.join(updates)}
                  WHERE id = %s AND user_id = %s
                  RETURNING *'''
        row = self._execute(sql, params, commit=True)
        return dict(row) if row else None

    def delete(self, kind: str, record_id: str) -> bool:
        spec = resource_spec(kind)
        row = self._execute(
            f"DELETE FROM {spec['table']} WHERE id = %s AND user_id = %s RETURNING id",
            (record_id, self.owner_id),
            commit=True
        )
        return row is not None

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        spec = resource_spec(kind)
        row = self._execute(
            f'{self._select_from(spec)} WHERE r.id = %s AND r.user_id = %s',
            (record_id, self.owner_id)
        )
        return dict(row) if row else None

    def list(self, kind: str, filters=None, order_by: Optional[str] = None,
             descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        spec = resource_spec(kind)
        where, params = self._where(spec, filters)
        sql = f'{self._select_from(spec)} WHERE {where}'
        if order_by:
            if order_by not in spec['orderable']:
                raise ValueError(f"Cannot order {spec['table']} by {order_by}")
            sql += f" ORDER BY r.{order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += ' LIMIT %s'
            params.append(limit)
        return [dict(row) for row in self._execute(sql, params, fetch='all')]

    def count(self, kind: str, filters=None) -> int:
        spec = resource_spec(kind)
        where, params = self._where(spec, filters)
        row = self._execute(f"SELECT COUNT(*) AS cnt FROM {spec['table']} r WHERE {where}", params)
        return row['cnt'] if row else 0

    def insert_within_quota(self, kind: str, fields: Dict[str, Any], since: datetime,
                            limit: int) -> Tuple[Optional[Dict[str, Any]], int]:
        """
        Count-check and insert as one atomic step.

        The owner's profile row is locked for the duration of the transaction,
        so concurrent creations for the same owner serialize on it and cannot
        both observe a count below the limit.

        Returns:
            (record, count) where count is the window count before the insert;
            record is None when the limit was already reached.
        """
        spec = resource_spec(kind)
        cur = None
        try:
            cur = self._cursor()
            cur.execute('SELECT id FROM profiles WHERE id = %s FOR UPDATE', (self.owner_id,))
            if cur.fetchone() is None:
                _rollback(self.conn)
                raise StoreUnavailable('Profile not found')

            cur.execute(
                f"SELECT COUNT(*) AS cnt FROM {spec['table']} WHERE user_id = %s AND created_at >= %s",
                (self.owner_id, since)
            )
            count = cur.fetchone()['cnt']
            if count >= limit:
                _rollback(self.conn)
                return None, count

            sql, params = self._insert_sql(spec, fields)
            cur.execute(sql, params)
            row = cur.fetchone()
            self.conn.commit()
            return dict(row), count
        except psycopg2.Error as e:
            _rollback(self.conn)
            print(f"[STORE] Guarded insert failed for owner {self.owner_id}: {e}", file=sys.stderr, flush=True)
            raise StoreUnavailable('The database rejected or failed the request') from e
        finally:
            if cur is not None:
                cur.close()

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self) -> Optional[Dict[str, Any]]:
        row = self._execute('SELECT * FROM profiles WHERE id = %s', (self.owner_id,))
        return dict(row) if row else None

    def update_profile(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update contact fields. Plan fields are owned by the reconciler."""
        updates = []
        params = []
        for column in PROFILE_CONTACT_FIELDS:
            if column in fields:
                updates.append(f'{column} = %s')
                params.append(fields[column])

        if not updates:
            return self.get_profile()

        updates.append('updated_at = NOW()')
        params.append(self.owner_id)
        row = self._execute(
            f"UPDATE profiles SET {', '.join(updates)} WHERE id = %s RETURNING *",
            params,
            commit=True
        )
        return dict(row) if row else None

    def write_plan(self, plan_type: str, plan_expiry_date: Optional[datetime],
                   plan_start_date: Optional[datetime] = None,
                   clear_start: bool = False) -> Dict[str, Any]:
        """
        Overwrite the cached plan fields. Last write wins.

        plan_start_date is only touched when given, or cleared when
        clear_start is set.
        """
        updates = ['plan_type = %s', 'plan_expiry_date = %s']
        params = [plan_type, plan_expiry_date]
        if plan_start_date is not None:
            updates.append('plan_start_date = %s')
            params.append(plan_start_date)
        elif clear_start:
            updates.append('plan_start_date = NULL')
        updates.append('updated_at = NOW()')
        params.append(self.owner_id)

        row = self._execute(
            f"UPDATE profiles SET {', '.join(updates)} WHERE id = %s RETURNING *",
            params,
            commit=True
        )
        if not row:
            raise StoreUnavailable('Profile not found')
        return dict(row)


class PostgresAccounts:
    """
    Identity rows: users, their provisioning, and password reset tokens.

    Runs with the server's own database credential; owner context is set
    explicitly where a statement touches an owner table.
    """

    def __init__(self, conn):
        self.conn = conn

    def _cursor(self, owner_id: Optional[str] = None):
        cur = self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        if owner_id:
            cur.execute("SELECT set_config('app.current_owner', %s, true)", (owner_id,))
        return cur

    def _run(self, fn, owner_id: Optional[str] = None):
        cur = None
        try:
            cur = self._cursor(owner_id)
            result = fn(cur)
            self.conn.commit()
            return result
        except psycopg2.Error as e:
            _rollback(self.conn)
            print(f"[STORE] Account operation failed: {e}", file=sys.stderr, flush=True)
            raise StoreUnavailable('The database rejected or failed the request') from e
        finally:
            if cur is not None:
                cur.close()

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        def query(cur):
            cur.execute(
                'SELECT id, email, password_hash, is_active FROM users WHERE email = %s',
                (email,)
            )
            row = cur.fetchone()
            return dict(row) if row else None
        return self._run(query)

    def create_user(self, user_id: str, email: str, password_hash: str,
                    full_name: Optional[str] = None) -> Dict[str, Any]:
        """Insert the identity row and provision its free-tier profile."""
        def query(cur):
            cur.execute(
                '''INSERT INTO users (id, email, password_hash, created_at)
                   VALUES (%s, %s, %s, NOW())
                   RETURNING id, email, created_at''',
                (user_id, email, password_hash)
            )
            user = dict(cur.fetchone())
            cur.execute(
                '''INSERT INTO profiles (id, email, full_name, plan_type)
                   VALUES (%s, %s, %s, 'free')
                   ON CONFLICT (id) DO UPDATE SET full_name = COALESCE(EXCLUDED.full_name, profiles.full_name)''',
                (user_id, email, full_name)
            )
            return user
        return self._run(query, owner_id=user_id)

    def record_login(self, user_id: str):
        def query(cur):
            cur.execute('UPDATE users SET last_login_at = NOW() WHERE id = %s', (user_id,))
        self._run(query)

    def create_reset_token(self, user_id: str, token_hash: str):
        def query(cur):
            # Invalidate any existing tokens for this user
            cur.execute(
                'UPDATE password_reset_tokens SET used_at = NOW() WHERE user_id = %s AND used_at IS NULL',
                (user_id,)
            )
            cur.execute(
                '''INSERT INTO password_reset_tokens (user_id, token_hash)
                   VALUES (%s, %s)''',
                (user_id, token_hash)
            )
        self._run(query)

    def consume_reset_token(self, token_hash: str, password_hash: str) -> Optional[str]:
        """Set the new password if the token is valid. Returns the user's email."""
        def query(cur):
            cur.execute(
                '''SELECT prt.id, prt.user_id, u.email
                   FROM password_reset_tokens prt
                   JOIN users u ON prt.user_id = u.id
                   WHERE prt.token_hash = %s
                     AND prt.used_at IS NULL
                     AND prt.expires_at > NOW()''',
                (token_hash,)
            )
            record = cur.fetchone()
            if not record:
                return None
            cur.execute(
                'UPDATE users SET password_hash = %s WHERE id = %s',
                (password_hash, record['user_id'])
            )
            cur.execute(
                'UPDATE password_reset_tokens SET used_at = NOW() WHERE id = %s',
                (record['id'],)
            )
            return record['email']
        return self._run(query)

    def list_profiles(self) -> List[Dict[str, Any]]:
        """All owners with their billing email, for server-side reconciliation."""
        def query(cur):
            cur.execute(
                '''SELECT p.id, COALESCE(p.email, u.email) AS email, p.plan_type
                   FROM profiles p JOIN users u ON u.id = p.id
                   WHERE u.is_active = true
                   ORDER BY p.created_at'''
            )
            return [dict(row) for row in cur.fetchall()]
        return self._run(query)

    def delete_user(self, user_id: str) -> bool:
        """Delete the identity row; profile, clients and transactions cascade."""
        def query(cur):
            cur.execute('DELETE FROM users WHERE id = %s RETURNING id', (user_id,))
            return cur.fetchone() is not None
        return self._run(query, owner_id=user_id)

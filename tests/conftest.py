"""
Shared fixtures: in-memory resource store, fake billing ledger and manual timers.
"""
import operator
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from auth import generate_jwt, hash_password
from errors import BillingUnavailable, StoreUnavailable
from store.postgres import RESOURCES, PROFILE_CONTACT_FIELDS

OPS = {
    '=': operator.eq,
    '!=': operator.ne,
    '>': operator.gt,
    '>=': operator.ge,
    '<': operator.lt,
    '<=': operator.le,
}

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


class MemoryDatabase:
    """Tables as lists of dicts, shared by every store built on it."""

    def __init__(self):
        self.users = {}
        self.profiles = {}
        self.tables = {'client': [], 'transaction': []}
        self.reset_tokens = []
        self.available = True
        self.inserts = 0
        self.clock = lambda: datetime.now(timezone.utc)

    def check(self):
        if not self.available:
            raise StoreUnavailable('The database rejected or failed the request')

    def add_owner(self, email='owner@example.com', plan_type='free', password='Secret123'):
        owner_id = str(uuid.uuid4())
        self.users[owner_id] = {
            'id': owner_id,
            'email': email,
            'password_hash': hash_password(password),
            'is_active': True,
            'created_at': self.clock(),
            'last_login_at': None,
        }
        self.profiles[owner_id] = {
            'id': owner_id,
            'email': email,
            'full_name': None,
            'phone': None,
            'company_name': None,
            'commercial_phone': None,
            'address': None,
            'plan_type': plan_type,
            'plan_start_date': None,
            'plan_expiry_date': None,
            'created_at': self.clock(),
            'updated_at': self.clock(),
        }
        return owner_id

    def seed(self, kind, owner_id, created_at, **fields):
        """Insert a row with an explicit creation instant."""
        record = self._new_row(kind, owner_id, fields)
        record['created_at'] = created_at
        self.tables[kind].append(record)
        return record

    def _new_row(self, kind, owner_id, fields):
        record = {'id': str(uuid.uuid4()), 'user_id': owner_id}
        for column in RESOURCES[kind]['columns']:
            record[column] = fields.get(column)
        record['created_at'] = self.clock()
        return record

    def rows(self, kind, owner_id):
        return [r for r in self.tables[kind] if r['user_id'] == owner_id]

    @contextmanager
    def open_store(self, owner_id):
        self.check()
        yield MemoryStore(self, owner_id)


class MemoryStore:
    """Same interface as store.postgres.PostgresStore."""

    def __init__(self, db, owner_id):
        self.db = db
        self.owner_id = owner_id

    def _with_client_name(self, kind, record):
        record = dict(record)
        if kind == 'transaction':
            client = self._find('client', record.get('client_id'))
            record['client_name'] = client['name'] if client else None
        return record

    def _find(self, kind, record_id):
        for row in self.db.rows(kind, self.owner_id):
            if row['id'] == record_id:
                return row
        return None

    def _matching(self, kind, filters):
        rows = self.db.rows(kind, self.owner_id)
        for column, op, value in filters or ():
            if column not in RESOURCES[kind]['filterable']:
                raise ValueError(f'Cannot filter on {column}')
            rows = [r for r in rows if r.get(column) is not None and OPS[op](r[column], value)]
        return rows

    def insert(self, kind, fields):
        self.db.check()
        record = self.db._new_row(kind, self.owner_id, fields)
        self.db.tables[kind].append(record)
        self.db.inserts += 1
        return dict(record)

    def update(self, kind, record_id, fields):
        self.db.check()
        row = self._find(kind, record_id)
        if row is None:
            return None
        for column in RESOURCES[kind]['columns']:
            if column in fields:
                row[column] = fields[column]
        return dict(row)

    def delete(self, kind, record_id):
        self.db.check()
        row = self._find(kind, record_id)
        if row is None:
            return False
        self.db.tables[kind].remove(row)
        if kind == 'client':
            for t in self.db.rows('transaction', self.owner_id):
                if t['client_id'] == record_id:
                    t['client_id'] = None
        return True

    def get(self, kind, record_id):
        self.db.check()
        row = self._find(kind, record_id)
        return self._with_client_name(kind, row) if row else None

    def list(self, kind, filters=None, order_by=None, descending=False, limit=None):
        self.db.check()
        rows = self._matching(kind, filters)
        if order_by:
            rows = sorted(rows, key=lambda r: r[order_by], reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [self._with_client_name(kind, r) for r in rows]

    def count(self, kind, filters=None):
        self.db.check()
        return len(self._matching(kind, filters))

    def insert_within_quota(self, kind, fields, since, limit):
        self.db.check()
        if self.owner_id not in self.db.profiles:
            raise StoreUnavailable('Profile not found')
        count = self.count(kind, [('created_at', '>=', since)])
        if count >= limit:
            return None, count
        return self.insert(kind, fields), count

    def get_profile(self):
        self.db.check()
        profile = self.db.profiles.get(self.owner_id)
        return dict(profile) if profile else None

    def update_profile(self, fields):
        self.db.check()
        profile = self.db.profiles.get(self.owner_id)
        if profile is None:
            return None
        for column in PROFILE_CONTACT_FIELDS:
            if column in fields:
                profile[column] = fields[column]
        return dict(profile)

    def write_plan(self, plan_type, plan_expiry_date, plan_start_date=None, clear_start=False):
        self.db.check()
        profile = self.db.profiles.get(self.owner_id)
        if profile is None:
            raise StoreUnavailable('Profile not found')
        profile['plan_type'] = plan_type
        profile['plan_expiry_date'] = plan_expiry_date
        if plan_start_date is not None:
            profile['plan_start_date'] = plan_start_date
        elif clear_start:
            profile['plan_start_date'] = None
        return dict(profile)


class MemoryAccounts:
    """Same interface as store.postgres.PostgresAccounts."""

    def __init__(self, db):
        self.db = db

    def find_user_by_email(self, email):
        self.db.check()
        for user in self.db.users.values():
            if user['email'] == email:
                return dict(user)
        return None

    def create_user(self, user_id, email, password_hash, full_name=None):
        self.db.check()
        self.db.users[user_id] = {
            'id': user_id,
            'email': email,
            'password_hash': password_hash,
            'is_active': True,
            'created_at': self.db.clock(),
            'last_login_at': None,
        }
        self.db.profiles[user_id] = {
            'id': user_id, 'email': email, 'full_name': full_name, 'phone': None,
            'company_name': None, 'commercial_phone': None, 'address': None,
            'plan_type': 'free', 'plan_start_date': None, 'plan_expiry_date': None,
            'created_at': self.db.clock(), 'updated_at': self.db.clock(),
        }
        return {'id': user_id, 'email': email, 'created_at': self.db.users[user_id]['created_at']}

    def record_login(self, user_id):
        self.db.users[user_id]['last_login_at'] = self.db.clock()

    def create_reset_token(self, user_id, token_hash):
        for token in self.db.reset_tokens:
            if token['user_id'] == user_id and token['used_at'] is None:
                token['used_at'] = self.db.clock()
        self.db.reset_tokens.append({
            'user_id': user_id,
            'token_hash': token_hash,
            'expires_at': self.db.clock() + timedelta(hours=1),
            'used_at': None,
        })

    def consume_reset_token(self, token_hash, password_hash):
        for token in self.db.reset_tokens:
            if (token['token_hash'] == token_hash and token['used_at'] is None
                    and token['expires_at'] > self.db.clock()):
                user = self.db.users[token['user_id']]
                user['password_hash'] = password_hash
                token['used_at'] = self.db.clock()
                return user['email']
        return None

    def list_profiles(self):
        self.db.check()
        return [
            {'id': p['id'], 'email': p['email'], 'plan_type': p['plan_type']}
            for p in self.db.profiles.values()
            if self.db.users[p['id']]['is_active']
        ]

    def delete_user(self, user_id):
        self.db.check()
        if self.db.users.pop(user_id, None) is None:
            return False
        self.db.profiles.pop(user_id, None)
        for kind in self.db.tables:
            self.db.tables[kind] = [r for r in self.db.tables[kind] if r['user_id'] != user_id]
        return True


class FakeLedger:
    """Billing ledger with customers and subscriptions held in memory."""

    price_id = 'price_test_pro'

    def __init__(self):
        self.customers = {}
        self.subscriptions = {}
        self.fail = False
        self.checkouts = []
        self.lookups = 0

    def _check(self):
        if self.fail:
            raise BillingUnavailable('Billing provider unreachable')

    def add_customer(self, email):
        customer_id = f'cus_{len(self.customers) + 1}'
        self.customers[email] = customer_id
        self.subscriptions.setdefault(customer_id, [])
        return customer_id

    def subscribe(self, email, period_end, start_date=None):
        customer_id = self.customers.get(email) or self.add_customer(email)
        self.subscriptions[customer_id] = [{
            'id': f'sub_{customer_id}',
            'status': 'active',
            'start_date': start_date or period_end - timedelta(days=30),
            'current_period_end': period_end,
        }]

    def cancel(self, email):
        self.subscriptions[self.customers[email]] = []

    def find_customer_by_email(self, email):
        self._check()
        self.lookups += 1
        customer_id = self.customers.get(email)
        return {'id': customer_id, 'email': email} if customer_id else None

    def list_active_subscriptions(self, customer_id, limit=1):
        self._check()
        return [dict(s) for s in self.subscriptions.get(customer_id, [])][:limit]

    def create_checkout_session(self, customer_email, return_url):
        self._check()
        self.checkouts.append(customer_email)
        return f'https://checkout.stripe.test/{len(self.checkouts)}'

    def create_portal_session(self, customer_id, return_url):
        self._check()
        return f'https://billing.stripe.test/{customer_id}'

    def is_configured(self):
        return True


class FakeTimer:
    """threading.Timer stand-in that only runs when fired."""

    def __init__(self, queue, interval, function, args=None, kwargs=None):
        self.queue = queue
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function(*self.args, **self.kwargs)


class TimerQueue:
    """Timer factory recording every timer it creates."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(self, interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def run_pending(self):
        """Fire timers that are due now; timers they arm stay pending."""
        due = self.pending()
        for timer in due:
            timer.fire()
        return len(due)


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def timers():
    return TimerQueue()


@pytest.fixture
def make_store(db):
    def factory(plan_type='free', email=None):
        owner_id = db.add_owner(email=email or f'{uuid.uuid4().hex[:8]}@example.com', plan_type=plan_type)
        return MemoryStore(db, owner_id)
    return factory


@pytest.fixture
def api(db, ledger, timers):
    """Flask app wired to the in-memory store and fake ledger."""
    from app import create_app
    flask_app = create_app(
        store_factory=lambda owner_id: MemoryStore(db, owner_id),
        accounts_factory=lambda: MemoryAccounts(db),
        store_opener=db.open_store,
        ledger=ledger,
        timer_factory=timers,
        poller_enabled=True,
    )
    flask_app.config['TESTING'] = True
    yield flask_app
    flask_app.extensions['saldus']['poller'].shutdown()


@pytest.fixture
def client(api):
    return api.test_client()


@pytest.fixture
def owner(db):
    """A free-tier owner with a valid session token."""
    email = 'maria@example.com'
    owner_id = db.add_owner(email=email)
    token = generate_jwt(user_id=owner_id, email=email)
    return {
        'owner_id': owner_id,
        'email': email,
        'headers': {'Authorization': f'Bearer {token}'},
    }


def transaction_payload(**overrides):
    payload = {
        'amount': 150.0,
        'type': 'income',
        'category': 'Services',
        'description': 'Website maintenance',
        'date': '2026-10-15',
    }
    payload.update(overrides)
    return payload


def seed_transactions(db, owner_id, ages, amount=Decimal('10'), kind='income', day=None):
    """Seed transactions created `age` ago for each timedelta in ages (relative to NOW)."""
    for age in ages:
        db.seed(
            'transaction', owner_id, NOW - age,
            amount=amount, type=kind, category='Sales', description='seed',
            date=day or (NOW - age).date(),
        )

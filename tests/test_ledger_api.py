"""
Integration tests for client, transaction and profile endpoints.
"""
import uuid
from datetime import datetime, timedelta, timezone

from conftest import transaction_payload


def _recent(db, kind, owner_id, n, **fields):
    now = datetime.now(timezone.utc)
    for i in range(n):
        db.seed(kind, owner_id, now - timedelta(hours=i + 1), **fields)


class TestAuthRequired:

    def test_no_token(self, client):
        response = client.get('/transactions')

        assert response.status_code == 401
        assert response.get_json()['error'] == 'Authentication required'

    def test_bad_token(self, client):
        response = client.get('/clients', headers={'Authorization': 'Bearer not-a-jwt'})

        assert response.status_code == 401


class TestClientEndpoints:
    """CRUD over /clients with the weekly quota."""

    def test_create_and_list(self, client, owner):
        response = client.post('/clients', json={
            'name': 'Acme Ltd', 'email': 'Billing@Acme.com', 'phone': '555-0000'
        }, headers=owner['headers'])

        assert response.status_code == 201
        data = response.get_json()
        assert data['client']['name'] == 'Acme Ltd'
        assert data['client']['email'] == 'billing@acme.com'
        assert data['quota'] == {'count': 1, 'limit': 5, 'canCreate': True}

        listing = client.get('/clients', headers=owner['headers']).get_json()
        assert listing['count'] == 1
        assert listing['clients'][0]['id'] == data['client']['id']

    def test_name_required(self, client, owner, db):
        response = client.post('/clients', json={'email': 'x@example.com'}, headers=owner['headers'])

        assert response.status_code == 400
        assert response.get_json()['field'] == 'name'
        assert db.rows('client', owner['owner_id']) == []

    def test_quota_exceeded_is_402(self, client, owner, db):
        _recent(db, 'client', owner['owner_id'], 5, name='Existing')

        response = client.post('/clients', json={'name': 'Sixth'}, headers=owner['headers'])

        assert response.status_code == 402
        data = response.get_json()
        assert data['limit_type'] == 'client'
        assert data['current'] == 5
        assert data['limit'] == 5
        assert data['plan'] == 'free'
        assert data['upgrade_to'] == 'pro'
        assert data['upgrade_url'].endswith('/billing/create-checkout')
        assert len(db.rows('client', owner['owner_id'])) == 5

    def test_search(self, client, owner, db):
        _recent(db, 'client', owner['owner_id'], 1, name='Padaria Central')
        _recent(db, 'client', owner['owner_id'], 1, name='Oficina Norte')

        data = client.get('/clients?q=padaria', headers=owner['headers']).get_json()

        assert [c['name'] for c in data['clients']] == ['Padaria Central']

    def test_update_and_delete(self, client, owner):
        created = client.post('/clients', json={'name': 'Old'}, headers=owner['headers']).get_json()
        client_id = created['client']['id']

        updated = client.put(f'/clients/{client_id}', json={'name': 'New'}, headers=owner['headers'])
        assert updated.status_code == 200
        assert updated.get_json()['client']['name'] == 'New'

        deleted = client.delete(f'/clients/{client_id}', headers=owner['headers'])
        assert deleted.status_code == 200
        assert deleted.get_json()['status'] == 'deleted'
        assert client.get(f'/clients/{client_id}', headers=owner['headers']).status_code == 404

    def test_other_owner_cannot_read(self, client, owner, db):
        other = db.add_owner(email='other@example.com')
        record = db.seed('client', other, datetime.now(timezone.utc), name='Private')

        response = client.get(f"/clients/{record['id']}", headers=owner['headers'])

        assert response.status_code == 404

    def test_malformed_id(self, client, owner):
        response = client.get('/clients/not-a-uuid', headers=owner['headers'])

        assert response.status_code == 400


class TestTransactionEndpoints:
    """CRUD over /transactions with the weekly quota."""

    def test_create(self, client, owner):
        response = client.post('/transactions', json=transaction_payload(), headers=owner['headers'])

        assert response.status_code == 201
        data = response.get_json()
        assert data['transaction']['amount'] == 150.0
        assert data['transaction']['date'] == '2026-10-15'
        assert data['quota']['count'] == 1

    def test_non_positive_amount_rejected(self, client, owner, db):
        for amount in (0, -10, 'abc', None):
            response = client.post('/transactions', json=transaction_payload(amount=amount),
                                   headers=owner['headers'])
            assert response.status_code == 400
            assert response.get_json()['field'] == 'amount'
        assert db.rows('transaction', owner['owner_id']) == []

    def test_amount_the_column_cannot_hold_rejected(self, client, owner, db):
        for amount in ('0.001', '1000000000000'):
            response = client.post('/transactions', json=transaction_payload(amount=amount),
                                   headers=owner['headers'])
            assert response.status_code == 400
            assert response.get_json()['field'] == 'amount'
        assert db.inserts == 0

    def test_overlong_category_rejected(self, client, owner, db):
        response = client.post('/transactions', json=transaction_payload(category='x' * 101),
                               headers=owner['headers'])

        assert response.status_code == 400
        assert response.get_json()['field'] == 'category'
        assert db.inserts == 0

    def test_bad_type_rejected(self, client, owner):
        response = client.post('/transactions', json=transaction_payload(type='refund'),
                               headers=owner['headers'])

        assert response.status_code == 400
        assert response.get_json()['field'] == 'type'

    def test_missing_description_rejected(self, client, owner):
        payload = transaction_payload()
        del payload['description']

        response = client.post('/transactions', json=payload, headers=owner['headers'])

        assert response.status_code == 400

    def test_fifth_allowed_sixth_refused(self, client, owner, db):
        for i in range(4):
            assert client.post('/transactions', json=transaction_payload(),
                               headers=owner['headers']).status_code == 201

        fifth = client.post('/transactions', json=transaction_payload(), headers=owner['headers'])
        assert fifth.status_code == 201
        assert fifth.get_json()['quota'] == {'count': 5, 'limit': 5, 'canCreate': False}

        sixth = client.post('/transactions', json=transaction_payload(), headers=owner['headers'])
        assert sixth.status_code == 402
        assert sixth.get_json()['limit_type'] == 'transaction'
        assert len(db.rows('transaction', owner['owner_id'])) == 5

    def test_pro_owner_unlimited(self, client, owner, db):
        db.profiles[owner['owner_id']]['plan_type'] = 'pro'
        _recent(db, 'transaction', owner['owner_id'], 12, amount=1, type='income',
                category='Sales', description='x', date=datetime.now(timezone.utc).date())

        response = client.post('/transactions', json=transaction_payload(), headers=owner['headers'])

        assert response.status_code == 201
        assert response.get_json()['quota'] == {'count': 13, 'limit': None, 'canCreate': True}

    def test_client_link(self, client, owner):
        acme = client.post('/clients', json={'name': 'Acme'}, headers=owner['headers']).get_json()['client']

        created = client.post('/transactions', json=transaction_payload(client_id=acme['id']),
                              headers=owner['headers']).get_json()['transaction']
        fetched = client.get(f"/transactions/{created['id']}", headers=owner['headers']).get_json()

        assert fetched['transaction']['client_name'] == 'Acme'

    def test_foreign_client_rejected(self, client, owner, db):
        other = db.add_owner(email='other@example.com')
        foreign = db.seed('client', other, datetime.now(timezone.utc), name='Not yours')

        response = client.post('/transactions', json=transaction_payload(client_id=foreign['id']),
                               headers=owner['headers'])

        assert response.status_code == 400
        assert response.get_json()['field'] == 'client_id'
        assert db.rows('transaction', owner['owner_id']) == []

    def test_list_filters(self, client, owner):
        client.post('/transactions', json=transaction_payload(date='2026-09-01'), headers=owner['headers'])
        client.post('/transactions', json=transaction_payload(type='expense', category='Rent', date='2026-10-01'),
                    headers=owner['headers'])
        client.post('/transactions', json=transaction_payload(description='Logo design', date='2026-10-10'),
                    headers=owner['headers'])

        everything = client.get('/transactions', headers=owner['headers']).get_json()
        assert [t['date'] for t in everything['transactions']] == ['2026-10-10', '2026-10-01', '2026-09-01']

        income = client.get('/transactions?type=income', headers=owner['headers']).get_json()
        assert income['count'] == 2

        october = client.get('/transactions?from=2026-10-01&to=2026-10-31', headers=owner['headers']).get_json()
        assert october['count'] == 2

        search = client.get('/transactions?q=logo', headers=owner['headers']).get_json()
        assert [t['description'] for t in search['transactions']] == ['Logo design']

    def test_update_not_quota_counted(self, client, owner, db):
        created = client.post('/transactions', json=transaction_payload(), headers=owner['headers']).get_json()
        transaction_id = created['transaction']['id']
        _recent(db, 'transaction', owner['owner_id'], 4, amount=1, type='income',
                category='Sales', description='x', date=datetime.now(timezone.utc).date())

        response = client.put(f'/transactions/{transaction_id}', json={'amount': 99.9}, headers=owner['headers'])

        assert response.status_code == 200
        assert response.get_json()['transaction']['amount'] == 99.9

    def test_delete_unknown(self, client, owner):
        response = client.delete(f'/transactions/{uuid.uuid4()}', headers=owner['headers'])

        assert response.status_code == 404

    def test_categories(self, client):
        data = client.get('/transactions/categories?type=expense').get_json()

        assert 'Rent' in data['expense']
        assert 'income' not in data

    def test_store_outage_is_503(self, client, owner, db):
        db.available = False

        response = client.get('/transactions', headers=owner['headers'])

        assert response.status_code == 503
        assert response.get_json()['error'] == 'Storage unavailable'


class TestProfileEndpoints:

    def test_get_profile(self, client, owner):
        data = client.get('/profile', headers=owner['headers']).get_json()

        assert data['profile']['email'] == owner['email']
        assert data['profile']['plan'] == {
            'subscribed': False, 'planType': 'free', 'planExpiryDate': None, 'planStartDate': None
        }

    def test_update_contact_fields(self, client, owner, db):
        response = client.put('/profile', json={
            'full_name': 'Maria Silva', 'company_name': 'Silva Consultoria', 'plan_type': 'pro'
        }, headers=owner['headers'])

        assert response.status_code == 200
        profile = db.profiles[owner['owner_id']]
        assert profile['full_name'] == 'Maria Silva'
        assert profile['company_name'] == 'Silva Consultoria'
        assert profile['plan_type'] == 'free'

    def test_empty_name_rejected(self, client, owner):
        response = client.put('/profile', json={'full_name': '  '}, headers=owner['headers'])

        assert response.status_code == 400

"""
Transaction Routes

GET    /transactions             - List (newest effective date first; ?q=, ?type=, ?from=, ?to=)
POST   /transactions             - Create (weekly quota on the free plan)
GET    /transactions/categories  - Suggested categories per type
GET    /transactions/<id>        - Get one transaction
PUT    /transactions/<id>        - Update (not quota-counted)
DELETE /transactions/<id>        - Delete
"""

from flask import Blueprint, request, jsonify

from auth import require_session
from billing.enforce import create_within_quota
from billing.quota import can_create, quota_to_json
from errors import ValidationError
from ledger.models import (
    TRANSACTION_TYPES,
    validate_transaction,
    categories_for,
    parse_date,
    parse_uuid,
    serialize,
    matches,
)

SEARCH_FIELDS = ('description', 'category', 'client_name')


def _check_client(store, fields):
    """A referenced client must belong to the same owner."""
    client_id = fields.get('client_id')
    if client_id and store.get('client', client_id) is None:
        raise ValidationError('client_id does not match any of your clients', field='client_id')


def init_transactions(get_store):
    """Initialize transaction routes with owner-scoped store access."""
    transactions_bp = Blueprint('transactions', __name__, url_prefix='/transactions')

    @transactions_bp.route('', methods=['GET'])
    @require_session
    def list_transactions():
        filters = []
        kind = request.args.get('type')
        if kind:
            if kind not in TRANSACTION_TYPES:
                raise ValidationError("type must be 'income' or 'expense'", field='type')
            filters.append(('type', '=', kind))
        if request.args.get('from'):
            filters.append(('date', '>=', parse_date(request.args['from'], 'from')))
        if request.args.get('to'):
            filters.append(('date', '<=', parse_date(request.args['to'], 'to')))

        store = get_store()
        query = request.args.get('q', '').strip()
        transactions = [
            t for t in store.list('transaction', filters=filters, order_by='date', descending=True)
            if matches(t, query, SEARCH_FIELDS)
        ]
        return jsonify({
            'transactions': [serialize(t) for t in transactions],
            'count': len(transactions),
            'quota': quota_to_json(can_create(store, 'transaction'))
        })

    @transactions_bp.route('', methods=['POST'])
    @require_session
    def create_transaction():
        """
        Record an income or expense.

        Request body:
        {
            "amount": 150.00,
            "type": "income",
            "category": "Services",
            "description": "Website maintenance",
            "date": "2026-10-20",
            "client_id": "uuid"        (optional)
        }

        Returns 201 with the transaction and the refreshed weekly quota, or
        402 when the weekly transaction limit is reached.
        """
        fields = validate_transaction(request.get_json(silent=True) or {})
        store = get_store()
        _check_client(store, fields)
        transaction = create_within_quota(store, 'transaction', fields)
        return jsonify({
            'transaction': serialize(transaction),
            'quota': quota_to_json(can_create(store, 'transaction'))
        }), 201

    @transactions_bp.route('/categories', methods=['GET'])
    def list_categories():
        kind = request.args.get('type')
        if kind and kind not in TRANSACTION_TYPES:
            raise ValidationError("type must be 'income' or 'expense'", field='type')
        return jsonify(categories_for(kind))

    @transactions_bp.route('/<transaction_id>', methods=['GET'])
    @require_session
    def get_transaction(transaction_id):
        transaction_id = parse_uuid(transaction_id, 'id')
        transaction = get_store().get('transaction', transaction_id)
        if not transaction:
            return jsonify({'error': 'Transaction not found'}), 404
        return jsonify({'transaction': serialize(transaction)})

    @transactions_bp.route('/<transaction_id>', methods=['PUT'])
    @require_session
    def update_transaction(transaction_id):
        transaction_id = parse_uuid(transaction_id, 'id')
        fields = validate_transaction(request.get_json(silent=True) or {}, partial=True)
        store = get_store()
        _check_client(store, fields)
        transaction = store.update('transaction', transaction_id, fields)
        if not transaction:
            return jsonify({'error': 'Transaction not found'}), 404
        return jsonify({'transaction': serialize(transaction)})

    @transactions_bp.route('/<transaction_id>', methods=['DELETE'])
    @require_session
    def delete_transaction(transaction_id):
        transaction_id = parse_uuid(transaction_id, 'id')
        store = get_store()
        if not store.delete('transaction', transaction_id):
            return jsonify({'error': 'Transaction not found'}), 404
        return jsonify({
            'status': 'deleted',
            'id': transaction_id,
            'quota': quota_to_json(can_create(store, 'transaction'))
        })

    return transactions_bp

"""
Client Routes

GET    /clients          - List clients (ordered by name, optional ?q= search)
POST   /clients          - Create client (weekly quota on the free plan)
GET    /clients/<id>     - Get one client
PUT    /clients/<id>     - Update client
DELETE /clients/<id>     - Delete client (its transactions keep no client)
"""

from flask import Blueprint, request, jsonify

from auth import require_session
from billing.enforce import create_within_quota
from billing.quota import can_create, quota_to_json
from ledger.models import validate_client, parse_uuid, serialize, matches

SEARCH_FIELDS = ('name', 'email', 'phone')


def init_clients(get_store):
    """Initialize client routes with owner-scoped store access."""
    clients_bp = Blueprint('clients', __name__, url_prefix='/clients')

    @clients_bp.route('', methods=['GET'])
    @require_session
    def list_clients():
        store = get_store()
        query = request.args.get('q', '').strip()
        clients = [c for c in store.list('client', order_by='name') if matches(c, query, SEARCH_FIELDS)]
        return jsonify({
            'clients': [serialize(c) for c in clients],
            'count': len(clients),
            'quota': quota_to_json(can_create(store, 'client'))
        })

    @clients_bp.route('', methods=['POST'])
    @require_session
    def create_client():
        """
        Create a client.

        Request body:
        {
            "name": "Acme Ltd",
            "email": "billing@acme.com",
            "phone": "+55 11 5555-0000"
        }

        Returns 201 with the client and the refreshed weekly quota, or 402
        when the weekly client limit is reached.
        """
        fields = validate_client(request.get_json(silent=True) or {})
        store = get_store()
        client = create_within_quota(store, 'client', fields)
        return jsonify({
            'client': serialize(client),
            'quota': quota_to_json(can_create(store, 'client'))
        }), 201

    @clients_bp.route('/<client_id>', methods=['GET'])
    @require_session
    def get_client(client_id):
        client_id = parse_uuid(client_id, 'id')
        client = get_store().get('client', client_id)
        if not client:
            return jsonify({'error': 'Client not found'}), 404
        return jsonify({'client': serialize(client)})

    @clients_bp.route('/<client_id>', methods=['PUT'])
    @require_session
    def update_client(client_id):
        client_id = parse_uuid(client_id, 'id')
        fields = validate_client(request.get_json(silent=True) or {}, partial=True)
        client = get_store().update('client', client_id, fields)
        if not client:
            return jsonify({'error': 'Client not found'}), 404
        return jsonify({'client': serialize(client)})

    @clients_bp.route('/<client_id>', methods=['DELETE'])
    @require_session
    def delete_client(client_id):
        client_id = parse_uuid(client_id, 'id')
        store = get_store()
        if not store.delete('client', client_id):
            return jsonify({'error': 'Client not found'}), 404
        return jsonify({
            'status': 'deleted',
            'id': client_id,
            'quota': quota_to_json(can_create(store, 'client'))
        })

    return clients_bp

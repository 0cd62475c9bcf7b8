"""
User Registration Module
Account lifecycle: registration with profile provisioning, account deletion.
"""

import re
import sys
import uuid
from flask import Blueprint, request, jsonify, g
from . import generate_jwt, hash_password, require_session, session_from_token


def validate_email(email: str) -> bool:
    """Basic email validation."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_password(password: str) -> tuple[bool, str]:
    """Validate password strength."""
    if len(password) < 8:
        return False, 'Password must be at least 8 characters'
    if not re.search(r'[A-Z]', password):
        return False, 'Password must contain at least one uppercase letter'
    if not re.search(r'[a-z]', password):
        return False, 'Password must contain at least one lowercase letter'
    if not re.search(r'[0-9]', password):
        return False, 'Password must contain at least one number'
    return True, ''


def init_registration(get_accounts, session_events):
    """Initialize registration and account routes."""
    registration_bp = Blueprint('registration', __name__, url_prefix='/auth')

    @registration_bp.route('/register', methods=['POST'])
    def register():
        """
        Register a new owner. A free-tier profile is provisioned with the user.

        Request body:
        {
            "email": "user@example.com",
            "password": "SecurePass123",
            "full_name": "User Name"
        }

        Returns:
        {
            "user_id": "uuid",
            "email": "user@example.com",
            "token": "jwt_token",
            "message": "Registration successful"
        }
        """
        data = request.get_json(silent=True) or {}

        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''
        full_name = (data.get('full_name') or '').strip()

        if not email:
            return jsonify({'error': 'email is required'}), 400

        if not password:
            return jsonify({'error': 'password is required'}), 400

        if not validate_email(email):
            return jsonify({'error': 'Invalid email format'}), 400

        valid, msg = validate_password(password)
        if not valid:
            return jsonify({'error': msg}), 400

        accounts = get_accounts()
        if accounts.find_user_by_email(email):
            return jsonify({'error': 'Email already registered'}), 409

        user_id = str(uuid.uuid4())
        user = accounts.create_user(user_id, email, hash_password(password), full_name or None)
        print(f"[AUTH] Registered owner {user_id} ({email})", flush=True)

        token = generate_jwt(user_id=user_id, email=email)
        session_events.emit('login', session_from_token(token))

        return jsonify({
            'user_id': user_id,
            'email': email,
            'full_name': full_name or None,
            'token': token,
            'created_at': str(user.get('created_at')),
            'message': 'Registration successful'
        }), 201

    @registration_bp.route('/account', methods=['DELETE'])
    @require_session
    def delete_account():
        """
        Delete the signed-in owner's account and everything it owns.

        Runs with the server's database credential; clients never hold an
        elevated key.
        """
        owner_id = g.session['owner_id']
        deleted = get_accounts().delete_user(owner_id)
        if not deleted:
            return jsonify({'error': 'Account not found'}), 404

        session_events.emit('logout', g.session)
        print(f"[AUTH] Deleted account {owner_id}", file=sys.stderr)
        return jsonify({'status': 'deleted'}), 200

    return registration_bp

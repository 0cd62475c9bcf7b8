"""
User Login Module
Session lifecycle: login, logout, token refresh.
"""

from flask import Blueprint, request, jsonify, g
from . import generate_jwt, verify_password, require_session, session_from_token


def init_login(get_accounts, session_events):
    """Initialize login routes with account access and session events."""
    login_bp = Blueprint('login', __name__, url_prefix='/auth')

    @login_bp.route('/login', methods=['POST'])
    def login():
        """
        Authenticate user and return a session token.

        Request body:
        {
            "email": "user@example.com",
            "password": "SecurePass123"
        }

        Returns:
        {
            "token": "jwt_token",
            "user": {"id": "uuid", "email": "user@example.com"}
        }
        """
        data = request.get_json(silent=True) or {}

        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''

        if not email or not password:
            return jsonify({'error': 'Email and password required'}), 400

        accounts = get_accounts()
        user = accounts.find_user_by_email(email)

        # Same error for unknown user and wrong password
        if not user or not verify_password(password, user['password_hash']):
            return jsonify({'error': 'Invalid credentials'}), 401

        if not user['is_active']:
            return jsonify({'error': 'Account disabled'}), 401

        user_id = str(user['id'])
        token = generate_jwt(user_id=user_id, email=user['email'])
        accounts.record_login(user_id)

        session_events.emit('login', session_from_token(token))

        return jsonify({
            'token': token,
            'user': {
                'id': user_id,
                'email': user['email']
            }
        }), 200

    @login_bp.route('/logout', methods=['POST'])
    @require_session
    def logout():
        """End the session: stops background subscription polling for the owner."""
        session_events.emit('logout', g.session)
        return jsonify({'status': 'logged_out'}), 200

    @login_bp.route('/refresh', methods=['POST'])
    @require_session
    def refresh():
        """Exchange a valid token for a fresh one."""
        token = generate_jwt(user_id=g.session['owner_id'], email=g.session['email'])
        session_events.emit('refresh', session_from_token(token))
        return jsonify({'token': token}), 200

    return login_bp

"""
Auth Module for Saldus
Domain: Identity & owner sessions

Issues and verifies session tokens. The token subject is the owner id that
scopes every row in the resource store.
"""

import os
import sys
import secrets
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Optional, Dict, Any, Callable

import jwt
from flask import request, g
from werkzeug.security import generate_password_hash, check_password_hash

from errors import AuthRequired

# JWT Configuration
JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_hex(32))
JWT_ALGORITHM = 'HS256'
JWT_EXPIRY_HOURS = int(os.environ.get('JWT_EXPIRY_HOURS', 168))

SESSION_EVENTS = ('login', 'logout', 'refresh')


def generate_jwt(user_id: str, email: str) -> str:
    """Generate a session token for an authenticated owner."""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user_id,
        'email': email,
        'iat': now,
        'exp': now + timedelta(hours=JWT_EXPIRY_HOURS)
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_jwt(token: str) -> dict:
    """Verify and decode a session token."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ValueError('Token has expired')
    except jwt.InvalidTokenError as e:
        raise ValueError(f'Invalid token: {str(e)}')


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, stored_hash: str) -> bool:
    if not stored_hash:
        return False
    return check_password_hash(stored_hash, password)


def session_from_token(token: str) -> Dict[str, Any]:
    payload = verify_jwt(token)
    return {
        'owner_id': payload['sub'],
        'email': payload.get('email'),
        'expires_at': datetime.fromtimestamp(payload['exp'], tz=timezone.utc),
    }


def get_session() -> Optional[Dict[str, Any]]:
    """
    Session of the current request, or None.

    Returns:
        {'owner_id', 'email', 'expires_at'} from a valid Bearer token
    """
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    try:
        return session_from_token(auth_header[7:])
    except ValueError as e:
        print(f'[AUTH] Rejected token: {e}', file=sys.stderr)
        return None


def require_session(f):
    """Decorator to require an owner session. Sets g.session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        session = get_session()
        if session is None:
            raise AuthRequired('Valid authentication required')
        g.session = session
        return f(*args, **kwargs)

    return decorated


class SessionEvents:
    """
    Session change notifications (login, logout, token refresh).

    Listeners are called synchronously as callback(event, session).
    """

    def __init__(self):
        self._listeners = []

    def on_session_change(self, callback: Callable[[str, Dict[str, Any]], None]):
        self._listeners.append(callback)
        return callback

    def emit(self, event: str, session: Dict[str, Any]):
        if event not in SESSION_EVENTS:
            raise ValueError(f'Unknown session event: {event}')
        for callback in list(self._listeners):
            callback(event, session)


INTERNAL_SECRET = os.environ.get('INTERNAL_SECRET', '')


def is_internal_request() -> bool:
    """Check if request comes from a trusted server-side job (cron)."""
    return bool(INTERNAL_SECRET) and request.headers.get('X-Saldus-Internal') == INTERNAL_SECRET

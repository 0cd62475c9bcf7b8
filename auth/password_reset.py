"""
Password Reset Module
Single recovery flow: emailed one-hour reset link.
"""

import secrets
import hashlib
import sys
import os
import resend
from flask import Blueprint, request, jsonify
from . import hash_password
from .registration import validate_password

# Initialize Resend
resend.api_key = os.environ.get('RESEND_API_KEY')

# Frontend URL for reset links
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')
RESET_FROM_ADDRESS = os.environ.get('RESET_FROM_ADDRESS', 'Saldus <noreply@saldus.app>')

SUCCESS_MESSAGE = 'If an account exists with this email, a password reset link has been sent.'


def generate_reset_token() -> str:
    """Generate a secure password reset token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash reset token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def send_reset_email(email: str, raw_token: str):
    """Send the reset link. Delivery failures are logged, never reported."""
    reset_url = f"{FRONTEND_URL}/reset-password?token={raw_token}"

    if not resend.api_key:
        # Fallback: log token if no Resend API key
        print(f"[PASSWORD RESET] No RESEND_API_KEY - Token for {email}: {raw_token}", file=sys.stderr)
        return

    try:
        resend.Emails.send({
            "from": RESET_FROM_ADDRESS,
            "to": [email],
            "subject": "Reset your Saldus password",
            "html": f"""
            <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 40px 20px;">
                <h2 style="color: #1a1a2e; margin-bottom: 24px;">Reset your password</h2>
                <p style="color: #4a4a5a; line-height: 1.6; margin-bottom: 24px;">
                    Click the button below to choose a new password. This link expires in 1 hour.
                </p>
                <a href="{reset_url}" style="display: inline-block; background: #2e7d32; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 500;">
                    Reset Password
                </a>
                <p style="color: #8a8a9a; font-size: 14px; margin-top: 32px;">
                    If you didn't request this, you can safely ignore this email.
                </p>
            </div>
            """
        })
        print(f"[PASSWORD RESET] Email sent to {email}", file=sys.stderr)
    except Exception as email_error:
        print(f"[PASSWORD RESET] Email send failed: {email_error}", file=sys.stderr)


def init_password_reset(get_accounts, mailer=send_reset_email):
    """Initialize password reset routes with account access."""
    password_reset_bp = Blueprint('password_reset', __name__, url_prefix='/auth/password-reset')

    @password_reset_bp.route('/request', methods=['POST'])
    def request_reset():
        """
        Request a password reset.

        Request body:
        {
            "email": "user@example.com"
        }

        Note: Always returns the same response to prevent email enumeration.
        """
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()

        if not email:
            return jsonify({'error': 'Email required'}), 400

        accounts = get_accounts()
        user = accounts.find_user_by_email(email)

        if user and user['is_active']:
            raw_token = generate_reset_token()
            accounts.create_reset_token(str(user['id']), hash_token(raw_token))
            mailer(email, raw_token)

        return jsonify({'message': SUCCESS_MESSAGE}), 200

    @password_reset_bp.route('/confirm', methods=['POST'])
    def confirm_reset():
        """
        Confirm password reset with token.

        Request body:
        {
            "token": "reset_token_from_email",
            "password": "NewSecurePassword123"
        }
        """
        data = request.get_json(silent=True) or {}
        token = (data.get('token') or '').strip()
        new_password = data.get('password') or ''

        if not token:
            return jsonify({'error': 'Reset token required'}), 400

        if not new_password:
            return jsonify({'error': 'New password required'}), 400

        valid, msg = validate_password(new_password)
        if not valid:
            return jsonify({'error': msg}), 400

        email = get_accounts().consume_reset_token(hash_token(token), hash_password(new_password))
        if not email:
            return jsonify({'error': 'Invalid or expired reset token'}), 400

        print(f"[PASSWORD RESET] Password reset completed for user {email}", file=sys.stderr)

        return jsonify({
            'message': 'Password has been reset successfully. You can now log in with your new password.'
        }), 200

    return password_reset_bp

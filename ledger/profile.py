"""
Profile Routes

GET /profile  - The owner's profile with the cached plan
PUT /profile  - Update contact fields (plan fields are not writable here)
"""

from flask import Blueprint, request, jsonify

from auth import require_session
from billing.reconcile import snapshot_from_profile, snapshot_to_json
from errors import StoreUnavailable
from ledger.models import PROFILE_FIELDS, validate_profile


def profile_to_json(profile):
    out = {'id': str(profile['id']), 'email': profile.get('email')}
    for field in PROFILE_FIELDS:
        out[field] = profile.get(field)
    out['plan'] = snapshot_to_json(snapshot_from_profile(profile))
    plan_start = profile.get('plan_start_date')
    out['plan']['planStartDate'] = plan_start.isoformat() if plan_start else None
    return out


def init_profile(get_store):
    """Initialize profile routes with owner-scoped store access."""
    profile_bp = Blueprint('profile', __name__, url_prefix='/profile')

    @profile_bp.route('', methods=['GET'])
    @require_session
    def get_profile():
        profile = get_store().get_profile()
        if profile is None:
            raise StoreUnavailable('Profile not found')
        return jsonify({'profile': profile_to_json(profile)})

    @profile_bp.route('', methods=['PUT'])
    @require_session
    def update_profile():
        """
        Update contact details.

        Request body (any subset):
        {
            "full_name": "Maria Silva",
            "phone": "+55 11 99999-0000",
            "company_name": "Silva Consultoria",
            "commercial_phone": "+55 11 5555-0000",
            "address": "Rua Augusta 100, Sao Paulo"
        }
        """
        fields = validate_profile(request.get_json(silent=True) or {})
        profile = get_store().update_profile(fields)
        if profile is None:
            raise StoreUnavailable('Profile not found')
        return jsonify({'profile': profile_to_json(profile)})

    return profile_bp

#!/usr/bin/env python3
"""
Subscription reconciliation cron worker.
Cadence: hourly
Budget: 5 minute max runtime

Reconciles every owner's cached plan with Stripe, including owners with no
active session (cancellations, lapsed payments).
"""

import os
import sys
import requests

SALDUS_URL = os.environ.get('SALDUS_URL', 'http://localhost:8080')
INTERNAL_SECRET = os.environ.get('INTERNAL_SECRET', '')

# Max runtime in seconds (5 minutes)
MAX_RUNTIME = 300


def main():
    """Run one reconciliation sweep."""
    url = f"{SALDUS_URL}/billing/reconcile/sweep"

    if not INTERNAL_SECRET:
        print("[RECONCILE] INTERNAL_SECRET not set", file=sys.stderr)
        sys.exit(1)

    print(f"[RECONCILE] Starting sweep at {url}")

    try:
        response = requests.post(
            url,
            json={},
            headers={'X-Saldus-Internal': INTERNAL_SECRET},
            timeout=MAX_RUNTIME
        )
        if response.status_code != 200:
            print(f"[RECONCILE] HTTP {response.status_code}: {response.text[:200]}", file=sys.stderr)
            sys.exit(1)

        results = response.json()
        print(
            f"[RECONCILE] Checked {results.get('checked', 0)} owners: "
            f"{results.get('pro', 0)} pro, {results.get('free', 0)} free"
        )

        errors = results.get('errors', [])
        for error in errors:
            print(f"[RECONCILE] owner={error.get('owner_id')}: {error.get('error')}", file=sys.stderr)
        if errors:
            sys.exit(1)

        sys.exit(0)

    except requests.Timeout:
        print(f"[RECONCILE] TIMEOUT: Exceeded {MAX_RUNTIME}s", file=sys.stderr)
        sys.exit(1)
    except requests.RequestException as e:
        print(f"[RECONCILE] FAILED: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()

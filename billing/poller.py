"""
Saldus Subscription Poller

Schedules reconciliation for signed-in owners:
- once right after login (initial load of plan-dependent views)
- every SUBSCRIPTION_POLL_SECONDS while the session is active: the token has
  not expired and the owner made a request within SUBSCRIPTION_IDLE_SECONDS
- once CHECKOUT_RECONCILE_DELAY_SECONDS after a successful checkout redirect

Keeps the last snapshot and last error per owner. This is the one place
consumers read plan state from; the profile row it is refreshed from is
written only by the reconciler.
"""

import os
import sys
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable

from errors import LedgerError, ValidationError

POLL_INTERVAL_SECONDS = float(os.environ.get('SUBSCRIPTION_POLL_SECONDS', 30))
CHECKOUT_RECONCILE_DELAY_SECONDS = float(os.environ.get('CHECKOUT_RECONCILE_DELAY_SECONDS', 2))
IDLE_TIMEOUT_SECONDS = float(os.environ.get('SUBSCRIPTION_IDLE_SECONDS', 15 * 60))

CHECKOUT_STATUSES = ('success', 'cancelled')


class SubscriptionPoller:
    """Per-owner reconciliation timers plus the cached plan state."""

    def __init__(self, reconcile_fn: Callable[[Dict[str, Any]], Dict[str, Any]],
                 interval: float = POLL_INTERVAL_SECONDS,
                 checkout_delay: float = CHECKOUT_RECONCILE_DELAY_SECONDS,
                 timer_factory=threading.Timer,
                 idle_timeout: float = IDLE_TIMEOUT_SECONDS,
                 clock: Callable[[], datetime] = None):
        self._reconcile = reconcile_fn
        self.interval = interval
        self.checkout_delay = checkout_delay
        self.idle_timeout = idle_timeout
        self._timer_factory = timer_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._timers: Dict[str, Any] = {}
        self._last_seen: Dict[str, datetime] = {}
        self._states: Dict[str, Dict[str, Any]] = {}
        self._subscribers = defaultdict(list)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self, session: Dict[str, Any]):
        """Begin polling for a session. Reconciles immediately, then on the interval."""
        owner_id = session['owner_id']
        with self._lock:
            self._sessions[owner_id] = session
            self._last_seen[owner_id] = self._clock()
        print(f"[POLLER] Polling started for owner={owner_id}", flush=True)
        self._arm(owner_id, 0)

    def stop(self, owner_id: str):
        """Stop polling for an owner (logout, account deletion, expired or idle session)."""
        with self._lock:
            self._sessions.pop(owner_id, None)
            self._last_seen.pop(owner_id, None)
            timer = self._timers.pop(owner_id, None)
        if timer is not None:
            timer.cancel()
            print(f"[POLLER] Polling stopped for owner={owner_id}", flush=True)

    def touch(self, owner_id: str):
        """Mark the owner's session as in use. Called on every authenticated request."""
        with self._lock:
            if owner_id in self._sessions:
                self._last_seen[owner_id] = self._clock()

    def is_polling(self, owner_id: str) -> bool:
        with self._lock:
            return owner_id in self._timers

    def _session_inactive(self, owner_id: str, session: Dict[str, Any]) -> Optional[str]:
        now = self._clock()
        expires_at = session.get('expires_at')
        if expires_at is not None and expires_at <= now:
            return 'session expired'
        with self._lock:
            last_seen = self._last_seen.get(owner_id)
        if last_seen is not None and (now - last_seen).total_seconds() > self.idle_timeout:
            return 'session idle'
        return None

    def _arm(self, owner_id: str, delay: float):
        with self._lock:
            if owner_id not in self._sessions:
                return
            previous = self._timers.get(owner_id)
            timer = self._timer_factory(delay, self._tick, args=(owner_id,))
            timer.daemon = True
            self._timers[owner_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _tick(self, owner_id: str):
        with self._lock:
            session = self._sessions.get(owner_id)
        if session is None:
            return
        reason = self._session_inactive(owner_id, session)
        if reason:
            print(f"[POLLER] {reason.capitalize()} for owner={owner_id}", flush=True)
            self.stop(owner_id)
            return
        try:
            self.poll(session)
        except Exception as e:
            print(f"[POLLER] Unexpected error polling owner={owner_id}: {e!r}", file=sys.stderr, flush=True)
        finally:
            self._arm(owner_id, self.interval)

    def after_checkout(self, session: Dict[str, Any], status: str) -> bool:
        """
        Handle the return from a hosted checkout.

        Returns:
            True if a delayed reconciliation was scheduled
        """
        if status not in CHECKOUT_STATUSES:
            raise ValidationError(f'Unknown checkout status: {status}', field='checkout')
        if status == 'cancelled':
            print(f"[POLLER] Checkout cancelled by owner={session['owner_id']}", flush=True)
            return False

        # Give the billing provider time to register the new subscription
        timer = self._timer_factory(self.checkout_delay, self.poll, args=(session,))
        timer.daemon = True
        timer.start()
        print(f"[POLLER] Checkout succeeded, reconciling owner={session['owner_id']} in {self.checkout_delay}s", flush=True)
        return True

    def handle_session_change(self, event: str, session: Optional[Dict[str, Any]]):
        """Session listener: login/refresh start polling, logout stops it."""
        if session is None:
            return
        if event in ('login', 'refresh'):
            if event == 'refresh' and self.is_polling(session['owner_id']):
                with self._lock:
                    self._sessions[session['owner_id']] = session
                    self._last_seen[session['owner_id']] = self._clock()
                return
            self.start(session)
        elif event == 'logout':
            self.stop(session['owner_id'])

    def shutdown(self):
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._sessions.clear()
            self._last_seen.clear()
        for timer in timers:
            timer.cancel()

    # ------------------------------------------------------------------
    # Plan state
    # ------------------------------------------------------------------

    def poll(self, session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Reconcile once. Failures are recorded, never raised: the previous
        snapshot stays in place and the next tick tries again.
        """
        owner_id = session['owner_id']
        try:
            snapshot = self._reconcile(session)
        except LedgerError as e:
            print(f"[POLLER] Reconciliation failed for owner={owner_id}: {e.message}", file=sys.stderr, flush=True)
            self.record(owner_id, error=e.message)
            return None
        self.record(owner_id, snapshot=snapshot)
        return snapshot

    def record(self, owner_id: str, snapshot: Optional[Dict[str, Any]] = None,
               error: Optional[str] = None):
        """Store the outcome of a reconciliation and notify on plan changes."""
        now = self._clock()
        with self._lock:
            state = self._states.setdefault(owner_id, {
                'snapshot': None, 'error': None, 'checked_at': None, 'failed_at': None
            })
            previous = state['snapshot']
            if snapshot is not None:
                state['snapshot'] = snapshot
                state['error'] = None
                state['checked_at'] = now
            if error is not None:
                state['error'] = error
                state['failed_at'] = now
            callbacks = list(self._subscribers.get(owner_id, ()))

        if snapshot is not None and snapshot != previous:
            for callback in callbacks:
                try:
                    callback(snapshot)
                except Exception as e:
                    print(f"[POLLER] Plan change listener failed for owner={owner_id}: {e!r}", file=sys.stderr, flush=True)

    def state(self, owner_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            state = self._states.get(owner_id)
            return dict(state) if state else None

    def subscribe(self, owner_id: str, callback: Callable[[Dict[str, Any]], None]):
        """Call callback(snapshot) whenever this owner's plan snapshot changes."""
        with self._lock:
            self._subscribers[owner_id].append(callback)

    def unsubscribe(self, owner_id: str, callback):
        with self._lock:
            if callback in self._subscribers.get(owner_id, ()):
                self._subscribers[owner_id].remove(callback)

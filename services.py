# services.py - Wiring shared by the Flask app, the scheduler and manage.py.

import logging
import threading

from email_service import EmailService
from errors import ConfigurationError
from firebase_client import initialize_firestore
from notifications import RunSummary, alert_operator, run_notification_pass
from tournament_store import FirestoreTournamentStore

logger = logging.getLogger(__name__)


class ReminderServices:
    """Holds the settings plus lazily built store and mailer for one process."""

    def __init__(self, settings, store=None, mailer=None):
        self.settings = settings
        self._store = store
        self._mailer = mailer
        self._lock = threading.Lock()

    def get_store(self):
        """Returns the tournament store, initialising Firestore on first use."""
        with self._lock:
            if self._store is None:
                db = initialize_firestore(self.settings)
                self._store = FirestoreTournamentStore(db, query_timeout=self.settings.invocation_timeout_seconds)
            return self._store

    def get_mailer(self):
        with self._lock:
            if self._mailer is None:
                self._mailer = EmailService(self.settings)
            return self._mailer


def run_reminder_pass(services, now=None):
    """One full pass; store setup failures are reported in the summary, not raised."""
    try:
        store = services.get_store()
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        summary = RunSummary()
        summary.fail(str(e))
        alert_operator(services.settings, summary.error)
        return summary
    return run_notification_pass(services.settings, store, services.get_mailer(), now=now)

# tournament_store.py - Firestore access for tournament reminders.
#
# Everything that touches the `tournaments` and `users` collections lives
# here so the pipeline can be driven by any object with the same methods.

import logging
import re
from datetime import timedelta

from firebase_admin import firestore
from google.api_core.exceptions import FailedPrecondition

from errors import ContentionError, IndexMissingError
from models import Tournament, TournamentStatus, to_utc_datetime

logger = logging.getLogger(__name__)

TOURNAMENTS_COLLECTION = 'tournaments'
USERS_COLLECTION = 'users'

# Composite index needed by the window query (equality on status + range on start_date)
WINDOW_INDEX_FIELDS = (('status', 'Ascending'), ('start_date', 'Ascending'))

INDEX_URL_PATTERN = re.compile(r'(https://console\.firebase\.google\.com/\S+)')

CLAIM_FIELD = 'notificationClaim'
CLAIMED_AT_FIELD = 'notificationClaimedAt'


def index_error_from(error, collection=TOURNAMENTS_COLLECTION, fields=WINDOW_INDEX_FIELDS):
    """Turns a FailedPrecondition about a missing index into IndexMissingError, else None."""
    message = str(error)
    if 'index' not in message.lower():
        return None
    match = INDEX_URL_PATTERN.search(message)
    return IndexMissingError(collection, fields, match.group(1) if match else None)


def claim_is_open(data, claim_id, now, lease_seconds):
    """True when a tournament can be claimed for delivery by `claim_id` at `now`."""
    if data.get('notificationSent') is True:
        return False
    holder = data.get(CLAIM_FIELD)
    if not holder or holder == claim_id:
        return True
    claimed_at = to_utc_datetime(data.get(CLAIMED_AT_FIELD))
    if claimed_at is None:
        return True
    # A lease older than lease_seconds belongs to an invocation that died mid-send
    return now - claimed_at >= timedelta(seconds=lease_seconds)


class FirestoreTournamentStore:
    """Reads tournaments and hosts, and owns every write to the notification fields."""

    def __init__(self, db, query_timeout=None):
        self.db = db
        self.query_timeout = query_timeout

    def _tournament_ref(self, tournament_id):
        return self.db.collection(TOURNAMENTS_COLLECTION).document(tournament_id)

    def _run_transaction(self, tournament_id, transactional_fn):
        try:
            return transactional_fn(self.db.transaction())
        except ValueError as e:
            # firestore gives up with a bare ValueError once its commit retries are spent
            raise ContentionError(
                tournament_id, f"Transaction on tournament {tournament_id} did not commit: {e}") from e

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def find_in_window(self, window):
        """Active tournaments whose start_date falls inside the window (flag not filtered)."""
        query = self.db.collection(TOURNAMENTS_COLLECTION)\
                       .where('status', '==', TournamentStatus.ACTIVE.value)\
                       .where('start_date', '>=', window.start)\
                       .where('start_date', '<=', window.end)
        try:
            docs = query.get(timeout=self.query_timeout)
        except FailedPrecondition as e:
            index_error = index_error_from(e)
            if index_error is None:
                raise
            logger.error(f"🚨 {index_error}")
            raise index_error from e
        return [Tournament.from_document(doc.id, doc.to_dict()) for doc in docs]

    def list_active(self):
        docs = self.db.collection(TOURNAMENTS_COLLECTION)\
                      .where('status', '==', TournamentStatus.ACTIVE.value)\
                      .get(timeout=self.query_timeout)
        return [Tournament.from_document(doc.id, doc.to_dict()) for doc in docs]

    def get_tournament(self, tournament_id):
        doc = self._tournament_ref(tournament_id).get(timeout=self.query_timeout)
        if not doc.exists:
            return None
        return Tournament.from_document(doc.id, doc.to_dict())

    def get_user(self, user_id):
        """Returns the user document as a dict, or None when it does not exist."""
        doc = self.db.collection(USERS_COLLECTION).document(user_id).get(timeout=self.query_timeout)
        if not doc.exists:
            return None
        return doc.to_dict() or {}

    # -----------------------------------------------------------------
    # Notification flag writes
    # -----------------------------------------------------------------

    def claim_notification(self, tournament_id, claim_id, now, lease_seconds):
        """
        Atomically takes the delivery lease for a tournament.
        Returns True only for the single caller allowed to send the reminder.
        """
        ref = self._tournament_ref(tournament_id)

        @firestore.transactional
        def claim_in_transaction(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            if not claim_is_open(snapshot.to_dict() or {}, claim_id, now, lease_seconds):
                return False
            transaction.update(ref, {CLAIM_FIELD: claim_id, CLAIMED_AT_FIELD: now})
            return True

        return self._run_transaction(tournament_id, claim_in_transaction)

    def mark_notification_sent(self, tournament_id, claim_id):
        """
        Sets notificationSent after a confirmed send and drops the lease.
        Returns False when the lease had already been taken over by someone else.
        """
        ref = self._tournament_ref(tournament_id)

        @firestore.transactional
        def mark_in_transaction(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            data = snapshot.to_dict() or {}
            still_ours = data.get(CLAIM_FIELD) in (None, claim_id)
            transaction.update(ref, {
                'notificationSent': True,
                'notificationSentAt': firestore.SERVER_TIMESTAMP,
                CLAIM_FIELD: firestore.DELETE_FIELD,
                CLAIMED_AT_FIELD: firestore.DELETE_FIELD,
            })
            return still_ours

        return self._run_transaction(tournament_id, mark_in_transaction)

    def release_claim(self, tournament_id, claim_id):
        """Gives the lease back after a failed send so the next poll can retry."""
        ref = self._tournament_ref(tournament_id)

        @firestore.transactional
        def release_in_transaction(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists or (snapshot.to_dict() or {}).get(CLAIM_FIELD) != claim_id:
                return False
            transaction.update(ref, {
                CLAIM_FIELD: firestore.DELETE_FIELD,
                CLAIMED_AT_FIELD: firestore.DELETE_FIELD,
            })
            return True

        return self._run_transaction(tournament_id, release_in_transaction)

    def reset_notification(self, tournament_id):
        ref = self._tournament_ref(tournament_id)
        if not ref.get(timeout=self.query_timeout).exists:
            return False
        ref.update({
            'notificationSent': False,
            'notificationSentAt': None,
            CLAIM_FIELD: firestore.DELETE_FIELD,
            CLAIMED_AT_FIELD: firestore.DELETE_FIELD,
        })
        return True

import threading
from datetime import datetime, timedelta, timezone

import pytest

from config import Settings
from email_service import EmailService
from errors import DeliveryError
from models import Tournament, to_utc_datetime
from tournament_store import CLAIM_FIELD, CLAIMED_AT_FIELD, claim_is_open

NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)


class InMemoryTournamentStore:
    """Same contract as FirestoreTournamentStore, backed by dicts and one lock."""

    def __init__(self, tournaments=None, users=None):
        self.tournaments = {k: dict(v) for k, v in (tournaments or {}).items()}
        self.users = {k: dict(v) for k, v in (users or {}).items()}
        self.lock = threading.Lock()
        self.claims = []

    def find_in_window(self, window):
        with self.lock:
            items = list(self.tournaments.items())
        results = []
        for doc_id, data in items:
            start = to_utc_datetime(data.get('start_date'))
            if data.get('status') == 'active' and start and window.start <= start <= window.end:
                results.append(Tournament.from_document(doc_id, data))
        return results

    def list_active(self):
        with self.lock:
            return [Tournament.from_document(k, v) for k, v in self.tournaments.items()
                    if v.get('status') == 'active']

    def get_tournament(self, tournament_id):
        with self.lock:
            data = self.tournaments.get(tournament_id)
        return Tournament.from_document(tournament_id, data) if data is not None else None

    def get_user(self, user_id):
        return self.users.get(user_id)

    def claim_notification(self, tournament_id, claim_id, now, lease_seconds):
        with self.lock:
            data = self.tournaments.get(tournament_id)
            if data is None or not claim_is_open(data, claim_id, now, lease_seconds):
                return False
            data[CLAIM_FIELD] = claim_id
            data[CLAIMED_AT_FIELD] = now
            self.claims.append((tournament_id, claim_id))
            return True

    def mark_notification_sent(self, tournament_id, claim_id):
        with self.lock:
            data = self.tournaments[tournament_id]
            still_ours = data.get(CLAIM_FIELD) in (None, claim_id)
            data['notificationSent'] = True
            data['notificationSentAt'] = datetime.now(timezone.utc)
            data.pop(CLAIM_FIELD, None)
            data.pop(CLAIMED_AT_FIELD, None)
            return still_ours

    def release_claim(self, tournament_id, claim_id):
        with self.lock:
            data = self.tournaments.get(tournament_id)
            if data is None or data.get(CLAIM_FIELD) != claim_id:
                return False
            data.pop(CLAIM_FIELD, None)
            data.pop(CLAIMED_AT_FIELD, None)
            return True

    def reset_notification(self, tournament_id):
        with self.lock:
            data = self.tournaments.get(tournament_id)
            if data is None:
                return False
            data['notificationSent'] = False
            data['notificationSentAt'] = None
            data.pop(CLAIM_FIELD, None)
            data.pop(CLAIMED_AT_FIELD, None)
            return True


class RecordingMailer(EmailService):
    """Real template rendering, SMTP replaced by an in-memory outbox."""

    def __init__(self, settings, fail_with=None, send_delay=0):
        super().__init__(settings)
        self.outbox = []
        self.fail_with = fail_with
        self.send_delay = send_delay
        self._lock = threading.Lock()

    def send(self, to_email, subject, html):
        if self.send_delay:
            threading.Event().wait(self.send_delay)
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.outbox.append({'to': to_email, 'subject': subject, 'html': html})


def make_settings(**overrides):
    values = dict(
        email_user='reminders@example.com',
        email_password='app-password',
        firebase_service_account_json='{"type": "service_account"}',
    )
    values.update(overrides)
    return Settings(**values)


def tournament_doc(minutes_from_now, now=NOW, **fields):
    data = {
        'name': 'Bermuda Clash',
        'status': 'active',
        'start_date': now + timedelta(minutes=minutes_from_now),
        'host_id': 'host-1',
        'notificationSent': False,
        'mode': 'Squad',
        'map': 'Bermuda',
        'room_type': 'Custom',
        'max_players': 48,
        'filled_spots': 12,
    }
    data.update(fields)
    return data


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def users():
    return {'host-1': {'email': 'host1@example.com', 'name': 'Host One'}}


@pytest.fixture
def mailer(settings):
    return RecordingMailer(settings)


def delivery_failure():
    return DeliveryError(None, 'Error sending email to host1@example.com: connection reset')

# notifications.py - Tournament start reminders.
#
# One pass = snapshot "now" -> match tournaments inside the window ->
# resolve each host's email -> claim, send, mark. The pass keeps no state of
# its own; the notificationSent flag (plus a short claim lease) on each
# tournament is what stops a reminder from going out twice.

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from google.api_core.exceptions import GoogleAPIError

from alerts import send_telegram_message
from errors import (ConfigurationError, HostEmailMissingError, HostNotFoundError,
                    IndexMissingError, NotifierError, RecordError, TournamentNotFoundError)
from models import NotificationWindow, to_utc_datetime

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    checked: int = 0
    notified: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)
    success: bool = True
    error: str = None
    index_url: str = None

    def fail(self, message, index_url=None):
        self.success = False
        self.error = message
        self.index_url = index_url
        self.errors.append(message)

    def to_dict(self):
        result = {
            'success': self.success,
            'checked': self.checked,
            'notifications': self.notified,
            'skipped': self.skipped,
            'errors': list(self.errors),
        }
        if self.error:
            result['error'] = self.error
        if self.index_url:
            result['indexUrl'] = self.index_url
        return result


def new_claim_id():
    return uuid.uuid4().hex


# =====================================================================
# MATCHER
# =====================================================================

def match_tournaments(store, window):
    """
    Active tournaments starting inside the window that have not been notified.
    Raises IndexMissingError when Firestore lacks the composite index.
    """
    matched = []
    for tournament in store.find_in_window(window):
        if tournament.notification_sent:
            logger.debug(f"Notification already sent for tournament {tournament.id}, skipping")
            continue
        if not tournament.is_active or not window.contains(tournament.start_date):
            continue
        matched.append(tournament)
    return matched


# =====================================================================
# HOST RESOLVER
# =====================================================================

def resolve_host_email(store, tournament):
    if not tournament.host_id:
        raise HostNotFoundError(tournament.id, f"Tournament {tournament.id} has no host_id, skipping notification")
    host = store.get_user(tournament.host_id)
    if host is None:
        raise HostNotFoundError(
            tournament.id,
            f"Host user {tournament.host_id} for tournament {tournament.id} not found, skipping notification")
    email = (host.get('email') or '').strip()
    if not email:
        raise HostEmailMissingError(
            tournament.id, f"Host user {tournament.host_id} has no email, skipping notification")
    return email


# =====================================================================
# DISPATCHER
# =====================================================================

def dispatch_notification(store, mailer, tournament, email, claim_id, now, lease_seconds, errors=None):
    """
    Claims the tournament, sends the reminder and sets notificationSent.

    Returns False when another invocation holds the claim (nothing sent).
    Raises a RecordError when rendering or sending fails; the claim is then
    released and the flag stays false so the next poll retries.

    Once the email is out the call returns True even if the flag write fails.
    That failure is appended to `errors` and the unexpired claim keeps other
    runs from sending again.
    """
    if not store.claim_notification(tournament.id, claim_id, now, lease_seconds):
        logger.info(f"Tournament {tournament.id} already notified or claimed by another run, skipping")
        return False

    try:
        subject, html = mailer.render_reminder(tournament, now)
        mailer.send(email, subject, html)
    except NotifierError as e:
        if isinstance(e, RecordError):
            e.tournament_id = tournament.id
        _release_quietly(store, tournament.id, claim_id)
        raise

    logger.info(f"✅ Sent reminder to {email} for tournament {tournament.id}")
    try:
        still_ours = store.mark_notification_sent(tournament.id, claim_id)
    except (GoogleAPIError, RecordError) as e:
        message = (f"Reminder sent for tournament {tournament.id} but notificationSent is still unset "
                   f"({e}); its claim blocks a resend for {lease_seconds}s")
        logger.error(f"❌ {message}")
        if errors is not None:
            errors.append(message)
        return True
    if not still_ours:
        logger.warning(f"Claim on tournament {tournament.id} expired before the flag was written")
    logger.info(f"Marked tournament {tournament.id} as notified")
    return True


def _release_quietly(store, tournament_id, claim_id):
    try:
        store.release_claim(tournament_id, claim_id)
    except (GoogleAPIError, RecordError) as e:
        # The lease expires on its own; the tournament becomes eligible again then
        logger.warning(f"Could not release claim on tournament {tournament_id}: {e}")


# =====================================================================
# DRIVER
# =====================================================================

def run_notification_pass(settings, store, mailer, now=None, claim_id=None, clock=time.monotonic):
    """
    Runs match -> resolve -> dispatch once and returns a RunSummary.
    Never raises: configuration problems come back as success=False.
    """
    summary = RunSummary()
    deadline = clock() + settings.invocation_timeout_seconds
    now = to_utc_datetime(now) if now is not None else datetime.now(timezone.utc)
    claim_id = claim_id or new_claim_id()

    try:
        settings.require_mail()
        window = NotificationWindow.for_settings(now, settings)
        logger.info(f"Looking for tournaments starting between {window.start.isoformat()} and {window.end.isoformat()}")
        matches = match_tournaments(store, window)
    except IndexMissingError as e:
        summary.fail(str(e), index_url=e.index_url)
        alert_operator(settings, summary.error)
        return summary
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        summary.fail(str(e))
        alert_operator(settings, summary.error)
        return summary
    except GoogleAPIError as e:
        logger.error(f"❌ Tournament query failed: {e}", exc_info=True)
        summary.fail(f"Tournament query failed: {e}")
        return summary

    summary.checked = len(matches)
    if not matches:
        logger.info("No upcoming tournaments found for notification")
        return summary
    logger.info(f"Found {len(matches)} upcoming tournaments for notification")

    for position, tournament in enumerate(matches):
        if clock() >= deadline:
            deferred = len(matches) - position
            message = f"Invocation timeout reached, {deferred} tournament(s) deferred to the next run"
            logger.warning(message)
            summary.errors.append(message)
            break
        try:
            email = resolve_host_email(store, tournament)
            if dispatch_notification(store, mailer, tournament, email, claim_id, now,
                                     settings.claim_lease_seconds, errors=summary.errors):
                summary.notified += 1
            else:
                summary.skipped += 1
        except RecordError as e:
            logger.warning(str(e))
            summary.errors.append(str(e))
        except ConfigurationError as e:
            logger.error(f"❌ {e}")
            summary.fail(str(e))
            alert_operator(settings, summary.error)
            break
        except GoogleAPIError as e:
            logger.warning(f"Firestore error while processing tournament {tournament.id}: {e}")
            summary.errors.append(f"Firestore error for tournament {tournament.id}: {e}")

    logger.info(f"Email notification process completed: {summary.notified}/{summary.checked} sent")
    return summary


def alert_operator(settings, message):
    send_telegram_message(settings, f"Tournament reminders failed\n{message}", parse_mode=None)


# =====================================================================
# OPERATOR TOOLS
# =====================================================================

def preview_window(settings, store, now=None):
    """Active tournaments with their distance to the window. Read only."""
    now = to_utc_datetime(now) if now is not None else datetime.now(timezone.utc)
    window = NotificationWindow.for_settings(now, settings)
    rows = []
    for tournament in store.list_active():
        minutes = tournament.minutes_until_start(now)
        rows.append({
            'id': tournament.id,
            'name': tournament.name,
            'startDate': tournament.start_date.isoformat() if tournament.start_date else None,
            'minutesToStart': round(minutes, 1) if minutes is not None else None,
            'inWindow': window.contains(tournament.start_date),
            'notificationSent': tournament.notification_sent,
        })
    rows.sort(key=lambda row: row['minutesToStart'] if row['minutesToStart'] is not None else float('inf'))
    return {'window': window.to_dict(), 'tournaments': rows}


def force_send(settings, store, mailer, tournament_id, ignore_flag=False, now=None):
    """
    Sends the reminder for one tournament regardless of window and status.
    Still goes through the claim, so it can't double up with a scheduled run.
    """
    settings.require_mail()
    now = to_utc_datetime(now) if now is not None else datetime.now(timezone.utc)
    tournament = store.get_tournament(tournament_id)
    if tournament is None:
        raise TournamentNotFoundError(tournament_id, f"Tournament {tournament_id} not found")
    if not tournament.is_active:
        logger.warning(f"Tournament status is {tournament.status}, not active. Proceeding anyway...")
    if ignore_flag and tournament.notification_sent:
        store.reset_notification(tournament_id)
    email = resolve_host_email(store, tournament)
    return dispatch_notification(store, mailer, tournament, email, new_claim_id(), now,
                                 settings.claim_lease_seconds)

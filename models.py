# models.py - Tournament records and the notification window.

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class TournamentStatus(str, Enum):
    ACTIVE = 'active'
    ONGOING = 'ongoing'
    ENDED = 'ended'
    CANCELLED = 'cancelled'


def to_utc_datetime(value):
    """
    Normalises a Firestore Timestamp, datetime, epoch number or ISO string
    into a timezone-aware UTC datetime. Returns None when it can't.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        # Naive datetimes are treated as UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if hasattr(value, 'to_datetime'):  # google.cloud.firestore Timestamp-like objects
        return to_utc_datetime(value.to_datetime())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Millisecond epochs are what the web client writes
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return to_utc_datetime(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            return None
    return None


@dataclass
class Tournament:
    id: str
    status: str
    start_date: datetime
    host_id: str = None
    notification_sent: bool = False
    name: str = 'Tournament'
    mode: str = 'N/A'
    map: str = 'N/A'
    room_type: str = 'N/A'
    max_players: int = 0
    filled_spots: int = 0

    @classmethod
    def from_document(cls, doc_id, data):
        data = data or {}
        return cls(
            id=doc_id,
            status=data.get('status', ''),
            start_date=to_utc_datetime(data.get('start_date')),
            host_id=data.get('host_id'),
            notification_sent=data.get('notificationSent') is True,
            name=data.get('name') or 'Tournament',
            mode=data.get('mode') or 'N/A',
            map=data.get('map') or 'N/A',
            room_type=data.get('room_type') or 'N/A',
            max_players=data.get('max_players') or 0,
            filled_spots=data.get('filled_spots') or 0,
        )

    @property
    def is_active(self):
        return self.status == TournamentStatus.ACTIVE.value

    def minutes_until_start(self, now):
        if self.start_date is None:
            return None
        return (self.start_date - now).total_seconds() / 60


@dataclass(frozen=True)
class NotificationWindow:
    """Inclusive [start, end] band of start times that are due a reminder."""
    now: datetime
    start: datetime
    end: datetime

    @classmethod
    def from_now(cls, now, lead_minutes=20, tolerance_minutes=1):
        now = to_utc_datetime(now)
        lead = timedelta(minutes=lead_minutes)
        tolerance = timedelta(minutes=tolerance_minutes)
        return cls(now=now, start=now + lead - tolerance, end=now + lead + tolerance)

    @classmethod
    def for_settings(cls, now, settings):
        return cls.from_now(now, settings.lead_minutes, settings.tolerance_minutes)

    def contains(self, moment):
        moment = to_utc_datetime(moment)
        if moment is None:
            return False
        return self.start <= moment <= self.end

    def to_dict(self):
        return {
            'now': self.now.isoformat(),
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
        }

# config.py - Process-wide settings for the tournament reminder service.
#
# Settings are read from the environment exactly once (after load_dotenv())
# and handed to the rest of the code as a frozen object. Nothing below the
# entry points (app.py, manage.py) should touch os.environ.

import logging
import os
from dataclasses import dataclass
from datetime import timedelta, timezone

from errors import ConfigurationError

logger = logging.getLogger(__name__)

# Tournament times are shown to hosts in Indian Standard Time.
IST_TIMEZONE = timezone(timedelta(hours=5, minutes=30))

TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class Settings:
    email_user: str = None
    email_password: str = None
    email_from_name: str = 'Tournament Host'
    smtp_host: str = 'smtp.gmail.com'
    smtp_port: int = 465
    smtp_use_ssl: bool = True
    smtp_timeout_seconds: float = 20.0

    firebase_service_account_json: str = None
    google_application_credentials: str = None

    lead_minutes: float = 20.0
    tolerance_minutes: float = 1.0
    poll_interval_seconds: int = 120
    invocation_timeout_seconds: float = 50.0
    claim_lease_seconds: int = 300
    scheduler_enabled: bool = False

    api_key: str = None
    app_base_url: str = None
    telegram_bot_token: str = None
    telegram_chat_id: str = None
    log_level: str = 'INFO'

    @property
    def band_width_seconds(self):
        """Width of the notification band (both sides of the lead time)."""
        return 2 * self.tolerance_minutes * 60

    @property
    def mail_configured(self):
        return bool(self.email_user and self.email_password)

    @property
    def store_configured(self):
        return bool(self.firebase_service_account_json or self.google_application_credentials)

    @property
    def telegram_configured(self):
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def require_mail(self):
        missing = [name for name, value in (('EMAIL_USER', self.email_user),
                                            ('EMAIL_PASSWORD', self.email_password)) if not value]
        if missing:
            raise ConfigurationError(f"Email credentials not configured: set {', '.join(missing)}")

    def require_store(self):
        if not self.store_configured:
            raise ConfigurationError(
                "Firestore credentials not configured: set FIREBASE_SERVICE_ACCOUNT_KEY_JSON "
                "or GOOGLE_APPLICATION_CREDENTIALS"
            )

    def cadence_warning(self):
        """Returns a warning message when polling is coarser than the band, else None.

        A tournament is only guaranteed to be observed inside the band when the
        scheduler fires at least once per band width.
        """
        if self.poll_interval_seconds > self.band_width_seconds:
            return (
                f"POLL_INTERVAL_SECONDS={self.poll_interval_seconds} is wider than the "
                f"notification band ({self.band_width_seconds:.0f}s); some tournaments may "
                f"never be observed inside the window. Lower the interval or raise "
                f"NOTIFICATION_TOLERANCE_MINUTES."
            )
        return None


# =====================================================================
# ENVIRONMENT PARSING
# =====================================================================

def _get_str(env, *names):
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _get_number(env, name, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got '{raw}'")
    return value


def _get_bool(env, name, default):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUE_VALUES


def load_settings(env=None):
    """Builds Settings from the given mapping (defaults to os.environ)."""
    env = os.environ if env is None else env

    tolerance = _get_number(env, 'NOTIFICATION_TOLERANCE_MINUTES', 1.0, float)
    if tolerance == 0:
        raise ConfigurationError("NOTIFICATION_TOLERANCE_MINUTES must be greater than zero")
    poll_interval = _get_number(env, 'POLL_INTERVAL_SECONDS', 120, int)
    if poll_interval == 0:
        raise ConfigurationError("POLL_INTERVAL_SECONDS must be greater than zero")

    settings = Settings(
        email_user=_get_str(env, 'EMAIL_USER'),
        email_password=_get_str(env, 'EMAIL_PASSWORD'),
        email_from_name=_get_str(env, 'EMAIL_FROM_NAME') or 'Tournament Host',
        smtp_host=_get_str(env, 'SMTP_HOST') or 'smtp.gmail.com',
        smtp_port=_get_number(env, 'SMTP_PORT', 465, int),
        smtp_use_ssl=_get_bool(env, 'SMTP_USE_SSL', True),
        smtp_timeout_seconds=_get_number(env, 'SMTP_TIMEOUT_SECONDS', 20.0, float),
        firebase_service_account_json=_get_str(env, 'FIREBASE_SERVICE_ACCOUNT_KEY_JSON',
                                               'FIREBASE_SERVICE_ACCOUNT'),
        google_application_credentials=_get_str(env, 'GOOGLE_APPLICATION_CREDENTIALS'),
        lead_minutes=_get_number(env, 'NOTIFICATION_LEAD_MINUTES', 20.0, float),
        tolerance_minutes=tolerance,
        poll_interval_seconds=poll_interval,
        invocation_timeout_seconds=_get_number(env, 'INVOCATION_TIMEOUT_SECONDS', 50.0, float),
        claim_lease_seconds=_get_number(env, 'CLAIM_LEASE_SECONDS', 300, int),
        scheduler_enabled=_get_bool(env, 'SCHEDULER_ENABLED', False),
        api_key=_get_str(env, 'API_KEY', 'CRON_SECRET'),
        app_base_url=_get_str(env, 'APP_BASE_URL'),
        telegram_bot_token=_get_str(env, 'TELEGRAM_BOT_TOKEN'),
        telegram_chat_id=_get_str(env, 'TELEGRAM_CHAT_ID'),
        log_level=(_get_str(env, 'LOG_LEVEL') or 'INFO').upper(),
    )

    if settings.tolerance_minutes >= settings.lead_minutes:
        raise ConfigurationError(
            "NOTIFICATION_TOLERANCE_MINUTES must be smaller than NOTIFICATION_LEAD_MINUTES"
        )
    return settings

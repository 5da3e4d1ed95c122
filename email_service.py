# email_service.py - Reminder email rendering and SMTP delivery.

import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from config import IST_TIMEZONE
from errors import DeliveryError, TemplateRenderError

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')
REMINDER_TEMPLATE = 'tournament_reminder.html'


def format_start_time(moment, tz=IST_TIMEZONE):
    """'7:30 PM' style time in the display timezone."""
    local = moment.astimezone(tz)
    return local.strftime('%I:%M %p').lstrip('0')


def format_start_date(moment, tz=IST_TIMEZONE):
    """'Monday, October 19' style date in the display timezone."""
    local = moment.astimezone(tz)
    return f"{local.strftime('%A, %B')} {local.day}"


class EmailService:
    """Renders the host reminder and hands it to the SMTP server."""

    def __init__(self, settings, templates_dir=TEMPLATES_DIR):
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=select_autoescape(['html']),
        )

    def render_reminder(self, tournament, now):
        """Returns (subject, html) for the 'starts soon' reminder."""
        minutes_left = tournament.minutes_until_start(now)
        try:
            html = self.env.get_template(REMINDER_TEMPLATE).render(
                tournament=tournament,
                start_time=format_start_time(tournament.start_date),
                start_date=format_start_date(tournament.start_date),
                minutes_left=max(0, round(minutes_left)) if minutes_left is not None else None,
                dashboard_url=self._dashboard_url(tournament),
            )
        except (TemplateError, AttributeError, TypeError, ValueError) as e:
            raise TemplateRenderError(tournament.id, f"Could not render reminder for tournament {tournament.id}: {e}")
        subject = f"🏆 Reminder: Your Tournament \"{tournament.name}\" Starts Soon!"
        return subject, html

    def _dashboard_url(self, tournament):
        if not self.settings.app_base_url:
            return None
        return f"{self.settings.app_base_url.rstrip('/')}/tournament/{tournament.id}"

    def _connect(self):
        s = self.settings
        if s.smtp_use_ssl:
            return smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        server.starttls()
        return server

    def send(self, to_email, subject, html):
        """Sends one HTML email. Raises DeliveryError unless the server accepted it."""
        self.settings.require_mail()

        message = MIMEMultipart('alternative')
        message['Subject'] = subject
        message['From'] = formataddr((self.settings.email_from_name, self.settings.email_user))
        message['To'] = to_email
        message.attach(MIMEText(html, 'html', 'utf-8'))

        try:
            with self._connect() as server:
                server.login(self.settings.email_user, self.settings.email_password)
                refused = server.sendmail(self.settings.email_user, [to_email], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(None, f"Error sending email to {to_email}: {e}")
        if refused:
            raise DeliveryError(None, f"Recipient refused by SMTP server: {to_email}")
        logger.info(f"📧 Email sent to {to_email}")

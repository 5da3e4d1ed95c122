# app.py - Free Fire Tournament reminder service.
# Exposes the cron trigger that emails hosts shortly before their tournament
# starts, a read-only window preview and a health check. Optionally runs the
# same pass on an in-process APScheduler interval job.

# =====================================================================
# IMPORTS
# =====================================================================
import hmac
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv  # For loading environment variables from .env file
from flask import Flask, jsonify, make_response, request
from flask_cors import CORS
from google.api_core.exceptions import GoogleAPIError

from config import IST_TIMEZONE, load_settings
from errors import ConfigurationError
from notifications import preview_window
from services import ReminderServices, run_reminder_pass

# =====================================================================
# LOAD ENVIRONMENT VARIABLES
# =====================================================================
load_dotenv()  # Loads variables from .env file into os.environ

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
APP_VERSION = '1.0.0'
REMINDER_JOB_ID = 'tournament_reminders'

logger = logging.getLogger(__name__)


# =====================================================================
# HELPER FUNCTIONS
# =====================================================================

def is_authorized(settings):
    """
    Checks the shared cron secret. Accepted from the x-api-key header, the
    `key`/`secret` query args or a `secret` field in a JSON body.
    """
    if not settings.api_key:
        return True
    body = request.get_json(silent=True) or {}
    candidates = [
        request.headers.get('x-api-key'),
        request.args.get('key'),
        request.args.get('secret'),
        body.get('secret') if isinstance(body, dict) else None,
    ]
    return any(c and hmac.compare_digest(str(c), settings.api_key) for c in candidates)


def unauthorized():
    return jsonify({"success": False, "error": "Unauthorized. Invalid API key."}), 401


def scheduled_reminder_job(services):
    """APScheduler entry point. Logs the summary; never raises into the scheduler."""
    try:
        summary = run_reminder_pass(services)
        logger.info(f"⏰ Scheduled reminder pass: {summary.to_dict()}")
    except Exception as e:
        logger.error(f"❌ Scheduled reminder pass crashed: {e}", exc_info=True)


def start_scheduler(services):
    scheduler = BackgroundScheduler(timezone=IST_TIMEZONE)
    scheduler.add_job(
        scheduled_reminder_job, 'interval',
        seconds=services.settings.poll_interval_seconds,
        args=[services],
        id=REMINDER_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"⏰ Reminder scheduler started (every {services.settings.poll_interval_seconds}s)")
    return scheduler


# =====================================================================
# FLASK APP CONFIGURATION
# =====================================================================

def create_app(settings=None, store=None, mailer=None, start_jobs=None):
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)

    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    services = ReminderServices(settings, store=store, mailer=mailer)
    app.extensions['reminders'] = services
    app.extensions['reminder_scheduler'] = None

    warning = settings.cadence_warning()
    if warning:
        logger.warning(warning)

    if start_jobs is None:
        start_jobs = settings.scheduler_enabled
    if start_jobs:
        app.extensions['reminder_scheduler'] = start_scheduler(services)

    register_routes(app)
    return app


# =====================================================================
# API ENDPOINTS
# =====================================================================

def register_routes(app):

    def services():
        return app.extensions['reminders']

    @app.route('/api/tournament-notifications', methods=['GET', 'POST'])
    def tournament_notifications_api():
        """Cron trigger: one match -> resolve -> send pass over tournaments starting soon."""
        settings = services().settings
        if not is_authorized(settings):
            return unauthorized()
        try:
            summary = run_reminder_pass(services())
        except Exception as e:
            # The caller is an unattended cron job; always answer with JSON
            logger.error(f"Error in notification endpoint: {e}", exc_info=True)
            return jsonify({"success": False, "checked": 0, "notifications": 0,
                            "error": str(e) or "Internal server error"}), 500
        return jsonify(summary.to_dict()), 200 if summary.success else 500

    @app.route('/api/notification-window', methods=['GET'])
    def notification_window_api():
        """Read-only preview of active tournaments and whether they sit inside the window."""
        settings = services().settings
        if not is_authorized(settings):
            return unauthorized()
        try:
            preview = preview_window(settings, services().get_store())
        except ConfigurationError as e:
            return jsonify({"success": False, "error": str(e)}), 500
        except GoogleAPIError as e:
            logger.error(f"Error fetching tournaments for window preview: {e}", exc_info=True)
            return jsonify({"success": False, "error": f"Firestore error: {e}"}), 500
        return jsonify({"success": True, **preview}), 200

    @app.route('/api/health-check', methods=['GET'])
    def health_check_api():
        settings = services().settings
        scheduler = app.extensions.get('reminder_scheduler')
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
            "services": {
                "firebase": {"configured": settings.store_configured},
                "email": {"configured": settings.mail_configured},
                "scheduler": {
                    "running": bool(scheduler and scheduler.running),
                    "intervalSeconds": settings.poll_interval_seconds,
                },
            },
        }), 200

    @app.route('/api/<path:path>', methods=['OPTIONS'])
    def options_handler(path):
        return make_response('', 200)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "error": "Method Not Allowed"}), 405

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "error": "Not Found"}), 404


# =====================================================================
# APPLICATION STARTUP
# =====================================================================
app = create_app()

if __name__ == '__main__':
    # host='0.0.0.0': Makes the server accessible externally.
    app.run(host='0.0.0.0', port=5000)

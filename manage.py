# manage.py - Operator commands for tournament reminders.
#
#   python manage.py run-once
#   python manage.py check-window
#   python manage.py reset <tournament_id>
#   python manage.py force-send <tournament_id> [--ignore-flag]

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from config import load_settings
from errors import NotifierError
from notifications import force_send, preview_window
from services import ReminderServices, run_reminder_pass

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger('manage')


def cmd_run_once(services, args):
    summary = run_reminder_pass(services)
    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.success else 1


def cmd_check_window(services, args):
    preview = preview_window(services.settings, services.get_store())
    window = preview['window']
    print(f"Current time (UTC): {window['now']}")
    print(f"Window: {window['start']} -> {window['end']}")
    if not preview['tournaments']:
        print("No active tournaments found")
        return 0
    in_window = 0
    for row in preview['tournaments']:
        marker = 'IN WINDOW' if row['inWindow'] else 'outside'
        sent = 'sent' if row['notificationSent'] else 'not sent'
        print(f"  {row['id']}  {row['name']!r}  {row['minutesToStart']} min  [{marker}]  ({sent})")
        if row['inWindow'] and not row['notificationSent']:
            in_window += 1
    print(f"Tournaments due a reminder right now: {in_window}")
    return 0


def cmd_reset(services, args):
    if services.get_store().reset_notification(args.tournament_id):
        logger.info(f"✅ Reset notification status for tournament {args.tournament_id}")
        return 0
    logger.error(f"Tournament {args.tournament_id} not found")
    return 1


def cmd_force_send(services, args):
    sent = force_send(services.settings, services.get_store(), services.get_mailer(),
                      args.tournament_id, ignore_flag=args.ignore_flag)
    if sent:
        logger.info(f"✅ Reminder sent for tournament {args.tournament_id}")
        return 0
    logger.warning(f"Tournament {args.tournament_id} was already notified (use --ignore-flag to resend)")
    return 1


def build_parser():
    parser = argparse.ArgumentParser(description="Tournament start reminder maintenance")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run-once", help="Run one reminder pass now").set_defaults(func=cmd_run_once)
    subparsers.add_parser("check-window", help="List active tournaments against the window (no writes)")\
              .set_defaults(func=cmd_check_window)

    reset = subparsers.add_parser("reset", help="Clear notificationSent on a tournament")
    reset.add_argument("tournament_id")
    reset.set_defaults(func=cmd_reset)

    force = subparsers.add_parser("force-send", help="Send the reminder now, ignoring the window")
    force.add_argument("tournament_id")
    force.add_argument("--ignore-flag", action="store_true", help="Resend even if already notified")
    force.set_defaults(func=cmd_force_send)
    return parser


def main(argv=None, services=None):
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        settings = services.settings if services else load_settings()
    except NotifierError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    log_level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    services = services or ReminderServices(settings)
    try:
        return args.func(services, args)
    except NotifierError as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

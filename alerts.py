# alerts.py - Operator alerts through the Telegram Bot API.

import logging

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def send_telegram_message(settings, message, parse_mode="Markdown"):
    """Sends a message to the configured Telegram chat. Returns True on success."""
    if not settings.telegram_configured:
        logger.debug("Telegram bot token or chat ID not configured. Skipping Telegram message.")
        return False

    telegram_payload = {
        "chat_id": settings.telegram_chat_id,
        "text": message,
    }
    if parse_mode:
        telegram_payload["parse_mode"] = parse_mode
    try:
        response = requests.post(TELEGRAM_API_URL.format(token=settings.telegram_bot_token),
                                 json=telegram_payload, timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.warning(f"Error sending Telegram message: {e}")
        return False
    logger.info("Telegram message sent successfully.")
    return True
